"""
대기열 (waiting_queue 테이블)

순서는 request_date 오름차순 (같은 초에 등록되면 id 순).
"""

import logging
from typing import Dict, List, Optional, Any

from kiosk.models.waiting import WaitingEntry
from kiosk_db import DatabaseManager

logger = logging.getLogger(__name__)

FIFO_ORDER = "request_date ASC, id ASC"


class WaitingQueue:
    """물품별 대기열 관리"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def find_entry(self, entry_id: int) -> Optional[WaitingEntry]:
        row = self.db.fetch_one("SELECT * FROM waiting_queue WHERE id = ?", (entry_id,))
        return WaitingEntry.from_db_row(row) if row else None

    def find_user_entry(self, user_id: int, item_id: int) -> Optional[WaitingEntry]:
        row = self.db.fetch_one(
            "SELECT * FROM waiting_queue WHERE user_id = ? AND item_id = ?",
            (user_id, item_id)
        )
        return WaitingEntry.from_db_row(row) if row else None

    def head(self, item_id: int) -> Optional[WaitingEntry]:
        """대기열 첫 순번"""
        row = self.db.fetch_one(f"""
            SELECT * FROM waiting_queue
            WHERE item_id = ?
            ORDER BY {FIFO_ORDER}
            LIMIT 1
        """, (item_id,))
        return WaitingEntry.from_db_row(row, position=1) if row else None

    def count(self, item_id: int) -> int:
        return self.db.fetch_value(
            "SELECT COUNT(*) FROM waiting_queue WHERE item_id = ?", (item_id,), default=0
        )

    def position_of(self, entry: WaitingEntry) -> int:
        """같은 물품 안에서의 순번 (1부터)"""
        return self.db.fetch_value("""
            SELECT COUNT(*) FROM waiting_queue
            WHERE item_id = ?
            AND (request_date < ? OR (request_date = ? AND id <= ?))
        """, (entry.item_id, entry.request_date, entry.request_date, entry.id), default=0)

    def insert(self, user_id: int, item_id: int, request_date: int,
               male_count: int = 0, female_count: int = 0) -> WaitingEntry:
        cursor = self.db.execute_query("""
            INSERT INTO waiting_queue (user_id, item_id, request_date, male_count, female_count)
            VALUES (?, ?, ?, ?, ?)
        """, (user_id, item_id, request_date, male_count, female_count))

        entry = WaitingEntry(
            id=cursor.lastrowid,
            user_id=user_id,
            item_id=item_id,
            request_date=request_date,
            male_count=male_count,
            female_count=female_count,
        )
        logger.info(f"대기열 등록: waiting_id={entry.id}, item={item_id}, user={user_id}")
        return entry

    def delete(self, entry_id: int) -> bool:
        cursor = self.db.execute_query("DELETE FROM waiting_queue WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    def delete_for_item(self, item_id: int) -> int:
        cursor = self.db.execute_query("DELETE FROM waiting_queue WHERE item_id = ?", (item_id,))
        return cursor.rowcount

    def list_for_item(self, item_id: int) -> List[WaitingEntry]:
        """물품의 대기자 명단 (순번 포함)"""
        rows = self.db.fetch_all(f"""
            SELECT w.*, u.name AS user_name, u.phone_number AS user_phone
            FROM waiting_queue w
            LEFT JOIN general_users u ON u.id = w.user_id
            WHERE w.item_id = ?
            ORDER BY w.request_date ASC, w.id ASC
        """, (item_id,))
        return [WaitingEntry.from_db_row(row, position=index + 1) for index, row in enumerate(rows)]

    def list_entries(self, page: int = 1, per_page: int = 10) -> Dict[str, Any]:
        """전체 대기열 (오래된 순, 관리자 화면용)

        Returns:
            {'data': [WaitingEntry, ...], 'total_count': int}
        """
        page = max(page, 1)
        per_page = max(per_page, 1)

        total = self.db.fetch_value("SELECT COUNT(*) FROM waiting_queue", default=0)
        rows = self.db.fetch_all("""
            SELECT w.*, u.name AS user_name, u.phone_number AS user_phone, i.name AS item_name,
                (SELECT COUNT(*) FROM waiting_queue w2
                 WHERE w2.item_id = w.item_id
                 AND (w2.request_date < w.request_date
                      OR (w2.request_date = w.request_date AND w2.id <= w.id))) AS position
            FROM waiting_queue w
            LEFT JOIN general_users u ON u.id = w.user_id
            LEFT JOIN items i ON i.id = w.item_id
            ORDER BY w.request_date ASC, w.id ASC
            LIMIT ? OFFSET ?
        """, (per_page, (page - 1) * per_page))

        return {
            'data': [WaitingEntry.from_db_row(row, position=row['position']) for row in rows],
            'total_count': total,
        }
