"""
대여 장부 (rental_records 테이블)

조회/쓰기 함수는 호출자가 연 트랜잭션 안에서 실행되는 것을 전제로 한다.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from kiosk.models.item import Item
from kiosk.models.rental import RentalRecord
from kiosk.models.user import GeneralUser
from kiosk.services.daily_window import LOCAL_TIMEZONE, date_bounds, day_bounds, resolve_timezone
from kiosk_db import DatabaseManager

logger = logging.getLogger(__name__)

RECORD_SORT_COLUMNS = {
    'rental_date': 'rental_date',
    'user_name': 'user_name',
    'item_name': 'item_name',
    'male_count': 'male_count',
    'female_count': 'female_count',
}


class RentalLedger:
    """대여 기록 관리"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def daily_window_timezone(self) -> str:
        return self.db.get_system_setting('daily_window_timezone', LOCAL_TIMEZONE)

    # =====================================================
    # 조회
    # =====================================================

    def find_record(self, record_id: int) -> Optional[RentalRecord]:
        row = self.db.fetch_one("SELECT * FROM rental_records WHERE id = ?", (record_id,))
        return RentalRecord.from_db_row(row) if row else None

    def find_open_rental(self, item_id: int) -> Optional[RentalRecord]:
        """물품의 미반납 대여 기록 (가장 최근 것)"""
        row = self.db.fetch_one("""
            SELECT * FROM rental_records
            WHERE item_id = ? AND is_returned = 0
            ORDER BY rental_date DESC, id DESC
            LIMIT 1
        """, (item_id,))
        return RentalRecord.from_db_row(row) if row else None

    def count_open_rentals(self, item_id: int) -> int:
        return self.db.fetch_value(
            "SELECT COUNT(*) FROM rental_records WHERE item_id = ? AND is_returned = 0",
            (item_id,), default=0
        )

    def count_user_rentals_today(self, user_id: int, item_id: int, now: int) -> int:
        """오늘(설정 시간대 기준) 해당 사용자의 해당 물품 대여 횟수"""
        start, end = day_bounds(now, self.daily_window_timezone())
        return self.db.fetch_value("""
            SELECT COUNT(*) FROM rental_records
            WHERE user_id = ? AND item_id = ?
            AND rental_date >= ? AND rental_date < ?
        """, (user_id, item_id, start, end), default=0)

    def is_daily_cap_reached(self, user_id: int, item: Item, now: int) -> bool:
        if not item.max_rentals_per_user:
            return False
        count = self.count_user_rentals_today(user_id, item.id, now)
        return count >= item.max_rentals_per_user

    def find_overdue(self, now: int) -> List[RentalRecord]:
        """반납 예정 시각이 지난 미반납 기록"""
        rows = self.db.fetch_all("""
            SELECT * FROM rental_records
            WHERE is_returned = 0
            AND return_due_date IS NOT NULL
            AND return_due_date < ?
            ORDER BY return_due_date, id
        """, (now,))
        return [RentalRecord.from_db_row(row) for row in rows]

    # =====================================================
    # 쓰기
    # =====================================================

    def insert_rental(self, user: GeneralUser, item: Item, male_count: int,
                      female_count: int, now: int) -> RentalRecord:
        """대여 기록 생성 (사용자/물품 표시 정보 스냅샷 포함)

        시간제 물품은 미반납 상태로, 일반 물품은 즉시 종료된 기록으로 남긴다.
        """
        due_seconds = item.rental_time_seconds
        record = RentalRecord(
            id=None,
            user_id=user.id,
            item_id=item.id,
            rental_date=now,
            return_due_date=now + due_seconds if due_seconds else None,
            is_returned=not item.is_time_limited,
            return_date=None if item.is_time_limited else now,
            is_manual_return=False,
            male_count=male_count,
            female_count=female_count,
            user_name=user.name,
            user_phone=user.phone_number,
            item_name=item.name,
            item_category=item.category,
        )

        cursor = self.db.execute_query("""
            INSERT INTO rental_records (
                user_id, item_id, user_name, user_phone, item_name, item_category,
                rental_date, return_due_date, is_returned, return_date,
                is_manual_return, male_count, female_count
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.user_id, record.item_id, record.user_name, record.user_phone,
            record.item_name, record.item_category, record.rental_date,
            record.return_due_date, 1 if record.is_returned else 0, record.return_date,
            0, record.male_count, record.female_count
        ))
        record.id = cursor.lastrowid

        logger.info(f"대여 기록 생성: rental_id={record.id}, item={item.id}, user={user.id}, "
                    f"due={record.return_due_date}")
        return record

    def mark_returned(self, record_id: int, return_date: int, manual: bool) -> bool:
        """반납 처리 (이미 반납된 기록은 건드리지 않는다)

        Returns:
            실제로 반납 처리되었는지 여부
        """
        cursor = self.db.execute_query("""
            UPDATE rental_records
            SET is_returned = 1, return_date = ?, is_manual_return = ?
            WHERE id = ? AND is_returned = 0
        """, (return_date, 1 if manual else 0, record_id))
        return cursor.rowcount > 0

    def force_return_open_for_item(self, item_id: int, now: int) -> int:
        """물품의 미반납 기록을 모두 수동 반납으로 종료 (시간제 해제/삭제 연쇄 처리)"""
        cursor = self.db.execute_query("""
            UPDATE rental_records
            SET is_returned = 1, return_date = ?, is_manual_return = 1
            WHERE item_id = ? AND is_returned = 0
        """, (now, item_id))
        return cursor.rowcount

    def update_due_date(self, record_id: int, new_due_date: int):
        self.db.execute_query(
            "UPDATE rental_records SET return_due_date = ? WHERE id = ?",
            (new_due_date, record_id)
        )

    def delete_record(self, record_id: int) -> bool:
        cursor = self.db.execute_query("DELETE FROM rental_records WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    # =====================================================
    # 관리자 조회
    # =====================================================

    def list_records(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """대여 이력 조회 (스냅샷 컬럼 기준)

        Args:
            filters: user_id, user_name, item_name, start_date, end_date (YYYY-MM-DD),
                page, per_page, sort, order

        Returns:
            {'data': [RentalRecord, ...], 'total_count': int}

        Raises:
            ValueError: 날짜 형식이 잘못된 경우
        """
        filters = filters or {}
        page = max(int(filters.get('page') or 1), 1)
        per_page = max(int(filters.get('per_page') or 10), 1)
        sort_column = RECORD_SORT_COLUMNS.get(filters.get('sort') or 'rental_date', 'rental_date')
        order = 'ASC' if str(filters.get('order', 'desc')).lower() == 'asc' else 'DESC'
        tz_name = self.daily_window_timezone()

        conditions = []
        params: List[Any] = []

        if filters.get('user_id') is not None:
            conditions.append("user_id = ?")
            params.append(filters['user_id'])
        if filters.get('user_name'):
            conditions.append("user_name LIKE ?")
            params.append(f"%{filters['user_name']}%")
        if filters.get('item_name'):
            conditions.append("item_name = ?")
            params.append(filters['item_name'])
        if filters.get('start_date'):
            start, _ = date_bounds(filters['start_date'], tz_name)
            conditions.append("rental_date >= ?")
            params.append(start)
        if filters.get('end_date'):
            _, end = date_bounds(filters['end_date'], tz_name)
            conditions.append("rental_date < ?")
            params.append(end)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        total = self.db.fetch_value(f"SELECT COUNT(*) FROM rental_records {where}", params, default=0)
        rows = self.db.fetch_all(f"""
            SELECT * FROM rental_records {where}
            ORDER BY {sort_column} {order}, id {order}
            LIMIT ? OFFSET ?
        """, params + [per_page, (page - 1) * per_page])

        return {
            'data': [RentalRecord.from_db_row(row) for row in rows],
            'total_count': total,
        }

    def available_years(self) -> List[int]:
        """대여 기록이 있는 연도 (설정 시간대 기준, 최신순)"""
        tz = resolve_timezone(self.daily_window_timezone())
        rows = self.db.fetch_all("SELECT DISTINCT rental_date FROM rental_records")
        years = {datetime.fromtimestamp(row['rental_date'], tz).year for row in rows}
        return sorted(years, reverse=True)

    def distinct_item_names(self) -> List[str]:
        """이력 필터용 물품명 목록 (삭제되지 않은 물품)"""
        rows = self.db.fetch_all("""
            SELECT DISTINCT name FROM items
            WHERE name IS NOT NULL AND is_deleted = 0
            ORDER BY name
        """)
        return [row['name'] for row in rows]

    def active_rentals_with_wait_count(self) -> List[Dict[str, Any]]:
        """시간제 물품의 미반납 대여 + 물품별 대기 인원"""
        rows = self.db.fetch_all("""
            SELECT r.*, COALESCE(w.wait_count, 0) AS wait_count
            FROM rental_records r
            JOIN items i ON i.id = r.item_id
            LEFT JOIN (
                SELECT item_id, COUNT(*) AS wait_count
                FROM waiting_queue GROUP BY item_id
            ) w ON w.item_id = r.item_id
            WHERE i.is_time_limited = 1 AND r.is_returned = 0
            ORDER BY r.return_due_date, r.id
        """)

        result = []
        for row in rows:
            data = RentalRecord.from_db_row(row).to_dict()
            data['wait_count'] = row['wait_count']
            result.append(data)
        return result
