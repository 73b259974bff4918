"""
만료 대여 자동 반납

반납 예정 시각이 지난 시간제 대여를 강제 반납 처리한다.
대여/대기열 작업 직전, 키오스크 대기 화면 복귀 시, 주기 스케줄러에서 호출된다.
실패해도 호출한 작업을 막지 않는다 (로그만 남기고 0 반환).
"""

import logging
import time
from typing import Callable, List, Optional

from kiosk.services.notifier import ChangeNotifier, PendingEvents
from kiosk.services.rental_ledger import RentalLedger
from kiosk_db import DatabaseManager

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """만료 대여 정리기"""

    def __init__(self, db: DatabaseManager, ledger: RentalLedger, notifier: ChangeNotifier,
                 clock: Callable[[], int] = None,
                 on_expired: Optional[Callable[[int, PendingEvents], None]] = None):
        """
        Args:
            db: 연결된 DatabaseManager
            ledger: 대여 장부
            notifier: 변경 알림
            clock: 현재 시각(epoch 초) 함수, 테스트에서 주입
            on_expired: 물품이 만료로 비었을 때 같은 트랜잭션 안에서 호출 (자동 대기열 승급용)
        """
        self.db = db
        self.ledger = ledger
        self.notifier = notifier
        self.clock = clock or (lambda: int(time.time()))
        self.on_expired = on_expired

    def sweep(self) -> int:
        """만료 대여 강제 반납

        두 번 연속 호출해도 이미 반납된 기록은 다시 건드리지 않는다.

        Returns:
            강제 반납된 기록 수 (오류 시 0)
        """
        events = PendingEvents(self.notifier)
        try:
            now = self.clock()
            with self.db.transaction():
                expired_item_ids = self._expire_overdue(now)
                if self.on_expired:
                    for item_id in expired_item_ids:
                        self.on_expired(item_id, events)

        except Exception as e:
            events.discard()
            logger.error(f"만료 대여 정리 실패 (작업은 계속 진행): {e}")
            return 0

        for item_id in expired_item_ids:
            events.occupancy(item_id)
        events.flush()

        if expired_item_ids:
            logger.info(f"만료 대여 강제 반납: {len(expired_item_ids)}건")
        return len(expired_item_ids)

    def _expire_overdue(self, now: int) -> List[int]:
        item_ids = []
        for record in self.ledger.find_overdue(now):
            if self.ledger.mark_returned(record.id, now, manual=False):
                logger.info(f"만료 반납: rental_id={record.id}, item={record.item_id}, "
                            f"due={record.return_due_date}")
                item_ids.append(record.item_id)
        return item_ids
