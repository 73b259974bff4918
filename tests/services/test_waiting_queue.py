"""
대기열 테스트 (FIFO 순서, 순번 계산)
"""

import unittest
import tempfile
import os
from pathlib import Path
import sys

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from kiosk.services.waiting_queue import WaitingQueue
from kiosk_db import create_database_manager


class TestWaitingQueue(unittest.TestCase):
    """WaitingQueue 테스트"""

    def setUp(self):
        """테스트 설정"""
        self.temp_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.temp_db.close()
        self.db_path = self.temp_db.name
        self.db = create_database_manager(self.db_path, initialize=True)
        self.waiting = WaitingQueue(self.db)

        self.item_a = self._insert_item('보드게임')
        self.item_b = self._insert_item('탁구채')
        self.users = [self._insert_user(f'사용자{i}', f'0100000000{i}') for i in range(4)]

    def tearDown(self):
        """테스트 정리"""
        self.db.close()
        for suffix in ('', '-wal', '-shm'):
            if os.path.exists(self.db_path + suffix):
                os.unlink(self.db_path + suffix)

    def _insert_item(self, name):
        cursor = self.db.execute_query("""
            INSERT INTO items (name, category, is_time_limited, rental_time_minutes)
            VALUES (?, '놀이', 1, 30)
        """, (name,))
        return cursor.lastrowid

    def _insert_user(self, name, phone):
        cursor = self.db.execute_query(
            "INSERT INTO general_users (name, phone_number, gender) VALUES (?, ?, '남')",
            (name, phone)
        )
        return cursor.lastrowid

    def test_head_is_oldest_request(self):
        """가장 먼저 요청한 항목이 첫 순번"""
        self.waiting.insert(self.users[0], self.item_a, 1002)
        first = self.waiting.insert(self.users[1], self.item_a, 1000)
        self.waiting.insert(self.users[2], self.item_a, 1001)

        head = self.waiting.head(self.item_a)
        self.assertEqual(head.id, first.id)
        self.assertEqual(head.position, 1)

    def test_same_second_ordered_by_id(self):
        """같은 초에 등록되면 등록 순서(id)대로"""
        first = self.waiting.insert(self.users[0], self.item_a, 1000)
        second = self.waiting.insert(self.users[1], self.item_a, 1000)

        self.assertEqual(self.waiting.position_of(first), 1)
        self.assertEqual(self.waiting.position_of(second), 2)

    def test_positions_are_per_item(self):
        """순번은 물품별로 계산"""
        self.waiting.insert(self.users[0], self.item_a, 1000)
        self.waiting.insert(self.users[1], self.item_a, 1001)
        entry_b = self.waiting.insert(self.users[2], self.item_b, 1002)

        self.assertEqual(self.waiting.position_of(entry_b), 1)
        self.assertEqual(self.waiting.count(self.item_a), 2)
        self.assertEqual(self.waiting.count(self.item_b), 1)

    def test_list_for_item(self):
        """대기자 명단 (순번 + 사용자 정보)"""
        for index, user_id in enumerate(self.users[:3]):
            self.waiting.insert(user_id, self.item_a, 1000 + index)

        entries = self.waiting.list_for_item(self.item_a)

        self.assertEqual([entry.position for entry in entries], [1, 2, 3])
        self.assertEqual([entry.user_id for entry in entries], self.users[:3])
        self.assertEqual(entries[0].user_name, '사용자0')
        self.assertEqual(entries[0].user_phone, '01000000000')

    def test_positions_shift_after_delete(self):
        """앞 순번 삭제 후 순번 당겨짐"""
        first = self.waiting.insert(self.users[0], self.item_a, 1000)
        second = self.waiting.insert(self.users[1], self.item_a, 1001)
        third = self.waiting.insert(self.users[2], self.item_a, 1002)

        self.assertTrue(self.waiting.delete(first.id))
        self.assertFalse(self.waiting.delete(first.id))

        self.assertEqual(self.waiting.position_of(second), 1)
        self.assertEqual(self.waiting.position_of(third), 2)

    def test_find_user_entry(self):
        """사용자-물품 대기 항목 조회"""
        entry = self.waiting.insert(self.users[0], self.item_a, 1000, male_count=1, female_count=2)

        found = self.waiting.find_user_entry(self.users[0], self.item_a)
        self.assertEqual(found.id, entry.id)
        self.assertEqual((found.male_count, found.female_count), (1, 2))
        self.assertIsNone(self.waiting.find_user_entry(self.users[0], self.item_b))

    def test_delete_for_item(self):
        """물품 대기열 전체 삭제"""
        self.waiting.insert(self.users[0], self.item_a, 1000)
        self.waiting.insert(self.users[1], self.item_a, 1001)
        self.waiting.insert(self.users[2], self.item_b, 1002)

        self.assertEqual(self.waiting.delete_for_item(self.item_a), 2)
        self.assertEqual(self.waiting.count(self.item_a), 0)
        self.assertEqual(self.waiting.count(self.item_b), 1)

    def test_list_entries_paginated(self):
        """전체 대기열 페이지 조회 (오래된 순)"""
        self.waiting.insert(self.users[0], self.item_a, 1000)
        self.waiting.insert(self.users[1], self.item_b, 1001)
        self.waiting.insert(self.users[2], self.item_a, 1002)

        page1 = self.waiting.list_entries(page=1, per_page=2)
        page2 = self.waiting.list_entries(page=2, per_page=2)

        self.assertEqual(page1['total_count'], 3)
        self.assertEqual([entry.request_date for entry in page1['data']], [1000, 1001])
        self.assertEqual([entry.position for entry in page1['data']], [1, 1])
        self.assertEqual(page2['data'][0].position, 2)
        self.assertEqual(page2['data'][0].item_name, '보드게임')


if __name__ == '__main__':
    unittest.main()
