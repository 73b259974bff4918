"""
변경 알림

대여/대기열 상태가 바뀌면 구독자(키오스크 화면, 관리자 화면)에게
물품 단위 이벤트를 전달한다. 이벤트는 트랜잭션 커밋 이후에만 발행된다.
"""

import logging
import threading
from typing import Callable, List, Set, Tuple

logger = logging.getLogger(__name__)

ITEM_OCCUPANCY_CHANGED = 'item_occupancy_changed'
QUEUE_CHANGED = 'queue_changed'

Subscriber = Callable[[str, int], None]


class ChangeNotifier:
    """물품 상태 변경 이벤트 발행기"""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber):
        """구독자 등록

        Args:
            callback: (event_name, item_id)를 받는 함수
        """
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, event_name: str, item_id: int):
        """이벤트 발행 (구독자 오류는 로그만 남긴다)"""
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event_name, item_id)
            except Exception as e:
                logger.error(f"변경 알림 구독자 오류: {event_name} (item={item_id}), {e}")


class PendingEvents:
    """트랜잭션 동안 모아 두었다가 커밋 후 한 번에 발행하는 이벤트 묶음"""

    def __init__(self, notifier: ChangeNotifier):
        self.notifier = notifier
        self._events: List[Tuple[str, int]] = []
        self._seen: Set[Tuple[str, int]] = set()

    def add(self, event_name: str, item_id: int):
        key = (event_name, item_id)
        if key not in self._seen:
            self._seen.add(key)
            self._events.append(key)

    def occupancy(self, item_id: int):
        self.add(ITEM_OCCUPANCY_CHANGED, item_id)

    def queue(self, item_id: int):
        self.add(QUEUE_CHANGED, item_id)

    def flush(self):
        events, self._events = self._events, []
        self._seen.clear()
        for event_name, item_id in events:
            self.notifier.publish(event_name, item_id)

    def discard(self):
        self._events = []
        self._seen.clear()
