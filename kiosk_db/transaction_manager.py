"""
트랜잭션 매니저

물품 단위로 직렬화된 읽기-검증-쓰기 구간을 제공한다.
같은 물품에 대한 두 요청은 프로세스 안에서는 물품별 락으로,
프로세스 사이에서는 BEGIN IMMEDIATE 쓰기 잠금으로 순서가 정해진다.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, Optional

from .database_manager import DatabaseManager


class TransactionType(Enum):
    """트랜잭션 타입"""
    RENT = "rent"
    JOIN_QUEUE = "join_queue"
    GRANT = "grant"
    CANCEL = "cancel"
    RETURN = "return"
    EXTEND = "extend"
    ITEM_UPDATE = "item_update"


class TransactionManager:
    """물품별 직렬화 트랜잭션 관리"""

    def __init__(self, db_manager: DatabaseManager):
        """
        Args:
            db_manager: 데이터베이스 매니저
        """
        self.db = db_manager
        self.logger = logging.getLogger(__name__)

        self._item_locks: Dict[Optional[int], threading.RLock] = {}
        self._registry_lock = threading.Lock()

        self.logger.info("트랜잭션 매니저 초기화 완료")

    def _get_item_lock(self, item_id: Optional[int]) -> threading.RLock:
        with self._registry_lock:
            lock = self._item_locks.get(item_id)
            if lock is None:
                lock = threading.RLock()
                self._item_locks[item_id] = lock
            return lock

    @contextmanager
    def item_transaction(self, item_id: Optional[int],
                         transaction_type: TransactionType) -> Iterator[DatabaseManager]:
        """물품 단위 트랜잭션

        블록 안에서 발생한 예외는 모든 쓰기를 롤백한 뒤 그대로 전파된다.

        Args:
            item_id: 대상 물품 ID
            transaction_type: 로그용 트랜잭션 타입

        Yields:
            트랜잭션이 열린 DatabaseManager
        """
        tx_id = uuid.uuid4().hex[:8]
        lock = self._get_item_lock(item_id)

        with lock:
            self.logger.debug(f"트랜잭션 시작: {tx_id} ({transaction_type.value}, item={item_id})")
            try:
                with self.db.transaction():
                    yield self.db
            except Exception as e:
                self.logger.warning(f"트랜잭션 롤백: {tx_id} ({transaction_type.value}, item={item_id}), {e}")
                raise
            self.logger.debug(f"트랜잭션 커밋: {tx_id} ({transaction_type.value}, item={item_id})")


def create_transaction_manager(db_manager: DatabaseManager) -> TransactionManager:
    """트랜잭션 매니저 생성

    Args:
        db_manager: 데이터베이스 매니저

    Returns:
        초기화된 TransactionManager 인스턴스
    """
    return TransactionManager(db_manager)
