"""
만료 대여 정리 스케줄러

요청이 없는 한가한 시간에도 만료된 대여가 오래 남아 있지 않도록
백그라운드에서 주기적으로 만료 정리를 실행한다.
"""

import threading
import logging
from datetime import datetime
from typing import Optional

from kiosk.services.expiry_sweeper import ExpirySweeper

logger = logging.getLogger(__name__)


class ExpiryScheduler:
    """만료 정리 스케줄러"""

    def __init__(self, sweeper: ExpirySweeper, interval: int = 60):
        """
        Args:
            sweeper: ExpirySweeper 인스턴스
            interval: 정리 간격 (초)
        """
        self.sweeper = sweeper
        self.interval = interval

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.stats = {
            'last_sweep': None,
            'sweep_count': 0,
            'expired_count': 0,
        }

        logger.info(f"[ExpiryScheduler] 초기화 완료 (간격: {self.interval}초)")

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self):
        """스케줄러 시작"""
        if self._running:
            logger.warning("[ExpiryScheduler] 이미 실행 중")
            return

        self._running = True
        self._stop_event.clear()

        self._thread = threading.Thread(target=self._sweep_loop, daemon=True, name="ExpirySweep")
        self._thread.start()

        logger.info("[ExpiryScheduler] 시작됨")

    def stop(self):
        """스케줄러 중지"""
        self._running = False
        self._stop_event.set()
        logger.info("[ExpiryScheduler] 중지됨")

    def _sweep_loop(self):
        while self._running:
            self.run_once()
            if self._stop_event.wait(self.interval):
                break

    def run_once(self) -> int:
        """정리 1회 실행

        Returns:
            강제 반납된 기록 수
        """
        expired = self.sweeper.sweep()

        self.stats['last_sweep'] = datetime.now().isoformat()
        self.stats['sweep_count'] += 1
        self.stats['expired_count'] += expired
        return expired

    def get_stats(self) -> dict:
        """정리 통계 조회"""
        return {
            **self.stats,
            'running': self._running,
            'interval': self.interval,
        }
