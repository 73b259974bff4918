"""
일일 대여 횟수 집계 구간 테스트
"""

import unittest
from datetime import datetime, timezone
from pathlib import Path
import sys

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from kiosk.services.daily_window import date_bounds, day_bounds, resolve_timezone


class TestDailyWindow(unittest.TestCase):
    """하루 구간 계산 테스트"""

    def test_local_day_contains_now(self):
        """로컬 시간 기준 하루 구간"""
        now = int(datetime(2026, 3, 10, 12, 0, 0).timestamp())
        start, end = day_bounds(now, 'local')

        self.assertLessEqual(start, now)
        self.assertLess(now, end)
        self.assertEqual(start, int(datetime(2026, 3, 10).timestamp()))
        self.assertEqual(end, int(datetime(2026, 3, 11).timestamp()))

    def test_fixed_timezone(self):
        """IANA 시간대 기준 자정"""
        # 2026-03-10 00:30 KST == 2026-03-09 15:30 UTC
        now = int(datetime(2026, 3, 9, 15, 30, tzinfo=timezone.utc).timestamp())

        seoul_start, seoul_end = day_bounds(now, 'Asia/Seoul')
        utc_start, utc_end = day_bounds(now, 'UTC')

        self.assertEqual(seoul_start, int(datetime(2026, 3, 9, 15, 0, tzinfo=timezone.utc).timestamp()))
        self.assertEqual(seoul_end - seoul_start, 86400)
        self.assertEqual(utc_start, int(datetime(2026, 3, 9, tzinfo=timezone.utc).timestamp()))
        self.assertEqual(utc_end - utc_start, 86400)

    def test_end_is_exclusive(self):
        """다음 날 자정은 다음 구간에 속함"""
        start, end = day_bounds(int(datetime(2026, 3, 9, 12, tzinfo=timezone.utc).timestamp()), 'UTC')
        next_start, _ = day_bounds(end, 'UTC')

        self.assertEqual(next_start, end)
        self.assertNotEqual(next_start, start)

    def test_unknown_timezone_falls_back_to_local(self):
        """알 수 없는 시간대는 로컬 시간 사용"""
        now = int(datetime(2026, 3, 10, 12, 0, 0).timestamp())

        self.assertIsNone(resolve_timezone('Mars/Olympus_Mons'))
        self.assertEqual(day_bounds(now, 'Mars/Olympus_Mons'), day_bounds(now, 'local'))

    def test_date_bounds(self):
        """YYYY-MM-DD 날짜 구간"""
        start, end = date_bounds('2026-03-09', 'UTC')

        self.assertEqual(start, int(datetime(2026, 3, 9, tzinfo=timezone.utc).timestamp()))
        self.assertEqual(end, int(datetime(2026, 3, 10, tzinfo=timezone.utc).timestamp()))

    def test_date_bounds_invalid_format(self):
        """잘못된 날짜 형식"""
        with self.assertRaises(ValueError):
            date_bounds('2026/03/09')


if __name__ == '__main__':
    unittest.main()
