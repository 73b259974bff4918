"""
물품 관리 서비스

- 물품 등록/수정/삭제 (관리자)
- 물품 상태 조회 (키오스크 화면, 대여 가능 여부 판단)
- 시간제 해제/삭제 시 대기열 정리 + 미반납 대여 강제 반납
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from kiosk.models.item import Item
from kiosk.services.notifier import ChangeNotifier, PendingEvents
from kiosk.services.rental_ledger import RentalLedger
from kiosk.services.results import ErrorKind, error_result, success_result
from kiosk.services.waiting_queue import WaitingQueue
from kiosk_db import DatabaseManager, TransactionManager
from kiosk_db.transaction_manager import TransactionType

logger = logging.getLogger(__name__)

STATUS_AVAILABLE = 'AVAILABLE'
STATUS_RENTED = 'RENTED'

EDITABLE_FIELDS = (
    'name', 'category', 'image_url', 'is_time_limited', 'rental_time_minutes',
    'max_rentals_per_user', 'is_automatic_gender_count', 'is_hidden', 'display_order',
)
BOOLEAN_FIELDS = ('is_time_limited', 'is_automatic_gender_count', 'is_hidden')


def _optional_positive_int(value: Any, field: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{field} 값은 숫자여야 합니다.')
    if number <= 0:
        raise ValueError(f'{field} 값은 1 이상이어야 합니다.')
    return number


def _strict_bool(value: Any, field: str) -> bool:
    """true/false 또는 0/1만 허용 ('false' 같은 문자열은 거부)"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValueError(f'{field} 값은 true/false여야 합니다.')


class ItemService:
    """물품 설정 및 상태 관리"""

    def __init__(self, db: DatabaseManager, tx_manager: TransactionManager,
                 ledger: RentalLedger, waiting: WaitingQueue, notifier: ChangeNotifier,
                 clock: Callable[[], int] = None):
        self.db = db
        self.tx_manager = tx_manager
        self.ledger = ledger
        self.waiting = waiting
        self.notifier = notifier
        self.clock = clock or (lambda: int(time.time()))

    # =====================================================
    # 조회
    # =====================================================

    def get_item(self, item_id: int) -> Optional[Item]:
        """ID로 물품 조회 (삭제된 물품 포함)"""
        row = self.db.fetch_one("SELECT * FROM items WHERE id = ?", (item_id,))
        return Item.from_db_row(row) if row else None

    def get_items(self, include_hidden: bool = False, include_deleted: bool = False) -> List[Item]:
        """물품 목록 (표시 순서대로)"""
        conditions = []
        if not include_deleted:
            conditions.append("is_deleted = 0")
        if not include_hidden:
            conditions.append("is_hidden = 0")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.db.fetch_all(f"SELECT * FROM items {where} ORDER BY display_order, id")
        return [Item.from_db_row(row) for row in rows]

    def get_item_status(self, item_id: int) -> Optional[Dict[str, Any]]:
        """물품의 현재 상태

        호출 전에 만료 대여 정리가 끝나 있어야 RENTED가 정확하다.

        Returns:
            상태 딕셔너리, 물품이 없거나 삭제되었으면 None
        """
        item = self.get_item(item_id)
        if not item or item.is_deleted:
            return None
        return self._build_status(item)

    def get_all_item_statuses(self, include_hidden: bool = False) -> List[Dict[str, Any]]:
        """전체 물품 상태 (키오스크 메인 화면)"""
        return [self._build_status(item) for item in self.get_items(include_hidden=include_hidden)]

    def _build_status(self, item: Item) -> Dict[str, Any]:
        status = item.to_dict()

        # 일반 물품은 점유 상태가 없다
        if not item.is_time_limited:
            status.update({
                'status': STATUS_AVAILABLE,
                'return_due_date': None,
                'current_rental_id': None,
                'waiting_count': None,
                'estimated_wait_minutes': None,
            })
            return status

        now = self.clock()
        open_rental = self.ledger.find_open_rental(item.id)
        waiting_count = self.waiting.count(item.id)

        remaining = open_rental.remaining_minutes(now) if open_rental else 0
        estimated = remaining + waiting_count * (item.rental_time_minutes or 0)

        status.update({
            'status': STATUS_RENTED if open_rental else STATUS_AVAILABLE,
            'return_due_date': open_rental.return_due_date if open_rental else None,
            'current_rental_id': open_rental.id if open_rental else None,
            'waiting_count': waiting_count,
            'estimated_wait_minutes': estimated,
        })
        return status

    # =====================================================
    # 등록/수정/삭제
    # =====================================================

    def _normalize(self, data: Dict[str, Any], current: Optional[Item] = None) -> Dict[str, Any]:
        """입력값 검증 및 정규화

        Raises:
            ValueError: 입력값이 올바르지 않은 경우
        """
        values = {field: data[field] for field in EDITABLE_FIELDS if field in data}

        for field in ('name', 'category'):
            if field in values or current is None:
                text = (values.get(field) or '').strip()
                if not text:
                    raise ValueError('필수 필드를 모두 입력해주세요.')
                values[field] = text

        for field in BOOLEAN_FIELDS:
            if field in values:
                values[field] = _strict_bool(values[field], field)

        if 'rental_time_minutes' in values:
            values['rental_time_minutes'] = _optional_positive_int(
                values['rental_time_minutes'], 'rental_time_minutes')
        if 'max_rentals_per_user' in values:
            values['max_rentals_per_user'] = _optional_positive_int(
                values['max_rentals_per_user'], 'max_rentals_per_user')
        if 'display_order' in values:
            try:
                values['display_order'] = int(values['display_order'] or 0)
            except (TypeError, ValueError):
                raise ValueError('display_order 값은 숫자여야 합니다.')

        is_time_limited = values.get('is_time_limited',
                                     current.is_time_limited if current else False)
        minutes = values.get('rental_time_minutes',
                             current.rental_time_minutes if current else None)
        if is_time_limited and not minutes:
            raise ValueError('시간제 물품은 대여 시간(분)을 입력해야 합니다.')

        return values

    def create_item(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """물품 등록

        Args:
            data: name, category, image_url, is_time_limited, rental_time_minutes,
                max_rentals_per_user, is_automatic_gender_count, is_hidden, display_order

        Returns:
            등록 결과 (item 포함)
        """
        try:
            values = self._normalize(data)
        except ValueError as e:
            return error_result(ErrorKind.VALIDATION_ERROR, str(e))

        item = Item(
            id=None,
            name=values['name'],
            category=values['category'],
            image_url=values.get('image_url'),
            is_time_limited=values.get('is_time_limited', False),
            rental_time_minutes=values.get('rental_time_minutes'),
            max_rentals_per_user=values.get('max_rentals_per_user'),
            is_automatic_gender_count=values.get('is_automatic_gender_count', False),
            is_hidden=values.get('is_hidden', False),
            display_order=values.get('display_order', 0),
        )

        try:
            with self.db.transaction():
                cursor = self.db.execute_query("""
                    INSERT INTO items (
                        name, category, image_url, is_time_limited, rental_time_minutes,
                        max_rentals_per_user, is_automatic_gender_count, is_hidden, display_order
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    item.name, item.category, item.image_url, 1 if item.is_time_limited else 0,
                    item.rental_time_minutes, item.max_rentals_per_user,
                    1 if item.is_automatic_gender_count else 0, 1 if item.is_hidden else 0,
                    item.display_order
                ))
                item.id = cursor.lastrowid

        except Exception as e:
            logger.error(f"물품 등록 오류: {item.name}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '아이템 추가에 실패했습니다.')

        logger.info(f"물품 등록: {item}")
        return success_result('아이템이 추가되었습니다.', item=item.to_dict())

    def update_item(self, item_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """물품 정보 수정

        시간제 → 일반 물품으로 바뀌면 같은 트랜잭션 안에서 대기열을 비우고
        미반납 대여를 수동 반납으로 종료한다.

        Returns:
            수정 결과 (item, cancelled_waitings, force_returned 포함)
        """
        events = PendingEvents(self.notifier)
        try:
            with self.tx_manager.item_transaction(item_id, TransactionType.ITEM_UPDATE):
                current = self.get_item(item_id)
                if not current or current.is_deleted:
                    return error_result(ErrorKind.NOT_FOUND, '아이템 정보를 찾을 수 없습니다.')

                try:
                    values = self._normalize(data, current)
                except ValueError as e:
                    return error_result(ErrorKind.VALIDATION_ERROR, str(e))

                cascade = {'cancelled_waitings': 0, 'force_returned': 0}
                if current.is_time_limited and values.get('is_time_limited') is False:
                    cascade = self._release_item(current.id, events)

                if values:
                    assignments = ', '.join(f"{field} = ?" for field in values)
                    params = [int(v) if isinstance(v, bool) else v for v in values.values()]
                    self.db.execute_query(
                        f"UPDATE items SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                        params + [item_id]
                    )
                    # 설정이 바뀌면 화면의 대여 가능 여부도 다시 그려야 한다
                    events.occupancy(item_id)

                updated = self.get_item(item_id)

        except Exception as e:
            events.discard()
            logger.error(f"물품 수정 오류: item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '아이템 정보 업데이트에 실패했습니다.')

        events.flush()
        logger.info(f"물품 수정: {updated}, {cascade}")
        return success_result('아이템 정보가 업데이트되었습니다.', item=updated.to_dict(), **cascade)

    def delete_item(self, item_id: int) -> Dict[str, Any]:
        """물품 삭제 (소프트 삭제, 대기열/미반납 대여 정리 포함)"""
        events = PendingEvents(self.notifier)
        try:
            with self.tx_manager.item_transaction(item_id, TransactionType.ITEM_UPDATE):
                current = self.get_item(item_id)
                if not current or current.is_deleted:
                    return error_result(ErrorKind.NOT_FOUND, '아이템 정보를 찾을 수 없습니다.')

                cascade = self._release_item(item_id, events)
                self.db.execute_query(
                    "UPDATE items SET is_deleted = 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (item_id,)
                )
                events.occupancy(item_id)

        except Exception as e:
            events.discard()
            logger.error(f"물품 삭제 오류: item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '아이템 삭제에 실패했습니다.')

        events.flush()
        logger.info(f"물품 삭제: item={item_id}, {cascade}")
        return success_result('아이템이 삭제되었습니다.', item_id=item_id, **cascade)

    def _release_item(self, item_id: int, events: PendingEvents) -> Dict[str, int]:
        """대기열 삭제 + 미반납 대여 강제 반납 (호출자 트랜잭션 안에서)"""
        cancelled = self.waiting.delete_for_item(item_id)
        force_returned = self.ledger.force_return_open_for_item(item_id, self.clock())

        if cancelled:
            events.queue(item_id)
        if force_returned:
            events.occupancy(item_id)

        logger.info(f"물품 점유 해제: item={item_id}, 대기 취소 {cancelled}건, 강제 반납 {force_returned}건")
        return {'cancelled_waitings': cancelled, 'force_returned': force_returned}
