"""
트랜잭션 매니저 테스트
"""

import unittest
import tempfile
import os
import threading
import time
from pathlib import Path
import sys

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from kiosk_db.database_manager import create_database_manager
from kiosk_db.transaction_manager import TransactionManager, TransactionType, create_transaction_manager


class TestTransactionManager(unittest.TestCase):
    """트랜잭션 매니저 테스트"""

    def setUp(self):
        """테스트 설정"""
        # 임시 데이터베이스 생성
        self.temp_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.temp_db.close()
        self.db_path = self.temp_db.name
        self.db_manager = create_database_manager(self.db_path, initialize=True)
        self.tx_manager = create_transaction_manager(self.db_manager)

        # 테스트용 물품
        cursor = self.db_manager.execute_query("""
            INSERT INTO items (name, category, is_time_limited, rental_time_minutes)
            VALUES (?, ?, ?, ?)
        """, ('탁구채', '운동', 1, 30))
        self.item_id = cursor.lastrowid

    def tearDown(self):
        """테스트 정리"""
        if self.db_manager:
            self.db_manager.close()
        for suffix in ('', '-wal', '-shm'):
            if os.path.exists(self.db_path + suffix):
                os.unlink(self.db_path + suffix)

    def _item_name(self):
        return self.db_manager.fetch_value("SELECT name FROM items WHERE id = ?", (self.item_id,))

    def test_factory(self):
        """팩토리 함수 테스트"""
        self.assertIsInstance(self.tx_manager, TransactionManager)
        self.assertIs(self.tx_manager.db, self.db_manager)

    def test_item_transaction_commit(self):
        """물품 트랜잭션 커밋 테스트"""
        with self.tx_manager.item_transaction(self.item_id, TransactionType.ITEM_UPDATE) as db:
            db.execute_query("UPDATE items SET name = ? WHERE id = ?", ('배드민턴채', self.item_id))

        self.assertEqual(self._item_name(), '배드민턴채')

    def test_item_transaction_rollback(self):
        """물품 트랜잭션 롤백 테스트"""
        with self.assertRaises(RuntimeError):
            with self.tx_manager.item_transaction(self.item_id, TransactionType.ITEM_UPDATE) as db:
                db.execute_query("UPDATE items SET name = ? WHERE id = ?", ('배드민턴채', self.item_id))
                raise RuntimeError("검증 실패")

        self.assertEqual(self._item_name(), '탁구채')

    def test_item_locks_are_per_item(self):
        """물품별 락 분리 테스트"""
        lock_a = self.tx_manager._get_item_lock(1)
        lock_b = self.tx_manager._get_item_lock(2)

        self.assertIs(lock_a, self.tx_manager._get_item_lock(1))
        self.assertIsNot(lock_a, lock_b)

    def test_same_item_transactions_are_serialized(self):
        """같은 물품 트랜잭션 직렬화 테스트"""
        timeline = []
        timeline_lock = threading.Lock()

        def worker(name):
            with self.tx_manager.item_transaction(self.item_id, TransactionType.RENT):
                with timeline_lock:
                    timeline.append(('enter', name))
                time.sleep(0.05)
                with timeline_lock:
                    timeline.append(('exit', name))

        threads = [threading.Thread(target=worker, args=(f'T{i}',)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(timeline), 8)
        # enter 다음에는 항상 같은 스레드의 exit가 와야 함
        for index in range(0, len(timeline), 2):
            self.assertEqual(timeline[index][0], 'enter')
            self.assertEqual(timeline[index + 1], ('exit', timeline[index][1]))


if __name__ == '__main__':
    unittest.main()
