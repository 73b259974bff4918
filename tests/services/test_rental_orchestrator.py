"""
대여 오케스트레이터 테스트

바로 대여 / 대기열 / 승인 / 반납 / 연장 상태 전이와 동시성 검증
"""

import unittest
import tempfile
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch
import sys

# 프로젝트 루트를 Python 경로에 추가
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from kiosk.services.notifier import ChangeNotifier, ITEM_OCCUPANCY_CHANGED, QUEUE_CHANGED
from kiosk.services.rental_orchestrator import create_rental_orchestrator
from kiosk_db import create_database_manager
from tests.fake_clock import DAY, FakeClock, NOON


class OrchestratorTestCase(unittest.TestCase):
    """공통 설정: 시간제 물품 1개 + 사용자 4명"""

    def setUp(self):
        """테스트 설정"""
        self.temp_db = tempfile.NamedTemporaryFile(delete=False, suffix='.db')
        self.temp_db.close()
        self.db_path = self.temp_db.name
        self.db = create_database_manager(self.db_path, initialize=True)

        self.clock = FakeClock(NOON)
        self.notifier = ChangeNotifier()
        self.events = []
        self.notifier.subscribe(lambda name, item_id: self.events.append((name, item_id)))

        self.orchestrator = create_rental_orchestrator(self.db, notifier=self.notifier, clock=self.clock)
        self.ledger = self.orchestrator.ledger
        self.waiting = self.orchestrator.waiting

        self.item_id = self._create_item('보드게임', is_time_limited=True, rental_time_minutes=30)
        self.users = [
            self._create_user('김철수', '01011110000', '남'),
            self._create_user('이영희', '01022220000', '여'),
            self._create_user('박민수', '01033330000', '남'),
            self._create_user('최지은', '01044440000', '여'),
        ]

    def tearDown(self):
        """테스트 정리"""
        self.db.close()
        for suffix in ('', '-wal', '-shm'):
            if os.path.exists(self.db_path + suffix):
                os.unlink(self.db_path + suffix)

    def _create_item(self, name, **data):
        data.update({'name': name, 'category': '놀이'})
        result = self.orchestrator.item_service.create_item(data)
        self.assertTrue(result['success'], result)
        return result['item']['id']

    def _create_user(self, name, phone, gender):
        result = self.orchestrator.user_service.create_user(
            {'name': name, 'phone_number': phone, 'gender': gender}
        )
        self.assertTrue(result['success'], result)
        return result['user']['id']


class TestRentNow(OrchestratorTestCase):
    """바로 대여"""

    def test_rent_sets_due_date_and_snapshot(self):
        """반납 예정 시각 = now + 대여 시간, 사용자/물품 스냅샷"""
        result = self.orchestrator.rent_now(self.users[0], self.item_id, 2, 1)

        self.assertTrue(result['success'])
        rental = result['rental']
        self.assertEqual(rental['rental_date'], NOON)
        self.assertEqual(rental['return_due_date'], NOON + 1800)
        self.assertFalse(rental['is_returned'])
        self.assertEqual((rental['male_count'], rental['female_count']), (2, 1))
        self.assertEqual(rental['user_name'], '김철수')
        self.assertEqual(rental['item_name'], '보드게임')

    def test_snapshot_survives_item_rename(self):
        """물품 이름이 바뀌어도 기록의 이름은 그대로"""
        rental_id = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']['id']
        self.orchestrator.item_service.update_item(self.item_id, {'name': '새 이름'})

        self.assertEqual(self.ledger.find_record(rental_id).item_name, '보드게임')

    def test_second_rent_is_occupied(self):
        """대여 중인 물품은 ITEM_OCCUPIED"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        result = self.orchestrator.rent_now(self.users[1], self.item_id, 0, 1)

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'ITEM_OCCUPIED')
        self.assertEqual(self.ledger.count_open_rentals(self.item_id), 1)

    def test_occupied_checked_before_party_counts(self):
        """점유 여부가 인원수 검증보다 먼저"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        result = self.orchestrator.rent_now(self.users[1], self.item_id, 0, 0)

        self.assertEqual(result['error'], 'ITEM_OCCUPIED')

    def test_not_found_checks(self):
        """없는 물품/사용자, 숨김 물품"""
        hidden_id = self._create_item('숨김', is_hidden=True)

        self.assertEqual(self.orchestrator.rent_now(self.users[0], 9999, 1, 0)['error'], 'NOT_FOUND')
        self.assertEqual(self.orchestrator.rent_now(self.users[0], hidden_id, 1, 0)['error'], 'NOT_FOUND')
        self.assertEqual(self.orchestrator.rent_now(9999, self.item_id, 1, 0)['error'], 'NOT_FOUND')

    def test_party_count_validation(self):
        """인원수 검증 (총 1명 이상, 음수/문자 불가)"""
        for male, female in ((0, 0), (-1, 2), ('abc', 1), (None, None)):
            result = self.orchestrator.rent_now(self.users[0], self.item_id, male, female)
            self.assertEqual(result['error'], 'VALIDATION_ERROR', (male, female))

        self.assertEqual(self.ledger.count_open_rentals(self.item_id), 0)

    def test_automatic_gender_count(self):
        """자동 성별 집계 물품은 입력 인원수를 무시"""
        auto_id = self._create_item('탁구채', is_time_limited=True, rental_time_minutes=20,
                                    is_automatic_gender_count=True)

        result = self.orchestrator.rent_now(self.users[1], auto_id, 5, 0)

        self.assertTrue(result['success'])
        self.assertEqual((result['rental']['male_count'], result['rental']['female_count']), (0, 1))

    def test_daily_cap(self):
        """하루 최대 대여 횟수, 다음 날에는 다시 가능"""
        capped_id = self._create_item('노래방', is_time_limited=True, rental_time_minutes=30,
                                      max_rentals_per_user=1)

        first = self.orchestrator.rent_now(self.users[0], capped_id, 1, 0)
        self.orchestrator.return_item(first['rental']['id'])

        again = self.orchestrator.rent_now(self.users[0], capped_id, 1, 0)
        self.assertEqual(again['error'], 'DAILY_CAP_EXCEEDED')

        other_user = self.orchestrator.rent_now(self.users[1], capped_id, 0, 1)
        self.assertTrue(other_user['success'])
        self.orchestrator.return_item(other_user['rental']['id'])

        self.clock.advance(DAY)
        self.assertTrue(self.orchestrator.rent_now(self.users[0], capped_id, 1, 0)['success'])

    def test_plain_item_rentals_are_terminal(self):
        """일반 물품은 여러 번 대여 가능, 기록은 즉시 종료"""
        plain_id = self._create_item('물티슈')
        self.events.clear()

        first = self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)
        second = self.orchestrator.rent_now(self.users[1], plain_id, 0, 1)

        self.assertTrue(first['success'])
        self.assertTrue(second['success'])
        self.assertTrue(first['rental']['is_returned'])
        self.assertIsNone(first['rental']['return_due_date'])
        self.assertEqual(self.ledger.count_open_rentals(plain_id), 0)
        self.assertEqual(self.events, [])

    def test_rent_sweeps_expired_rental_first(self):
        """만료된 대여는 바로 대여 전에 자동 반납"""
        first = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        self.clock.now = NOON + 1800 + 1

        result = self.orchestrator.rent_now(self.users[1], self.item_id, 0, 1)

        self.assertTrue(result['success'])
        expired = self.ledger.find_record(first['rental']['id'])
        self.assertTrue(expired.is_returned)
        self.assertFalse(expired.is_manual_return)
        self.assertEqual(expired.return_date, NOON + 1801)

    def test_events_only_on_success(self):
        """실패한 대여는 알림 없음"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        self.assertEqual(self.events, [(ITEM_OCCUPANCY_CHANGED, self.item_id)])

        self.events.clear()
        self.orchestrator.rent_now(self.users[1], self.item_id, 0, 1)
        self.assertEqual(self.events, [])

    def test_persistence_error(self):
        """저장소 오류는 PERSISTENCE_ERROR로 변환"""
        self.db.close()

        result = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'PERSISTENCE_ERROR')


class TestSweepFailure(OrchestratorTestCase):
    """만료 정리가 실패해도 대여 작업은 계속 진행"""

    def setUp(self):
        super().setUp()
        patcher = patch.object(self.ledger, 'find_overdue',
                               side_effect=sqlite3.OperationalError('database is locked'))
        self.find_overdue = patcher.start()
        self.addCleanup(patcher.stop)

    def test_rent_now(self):
        result = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        self.assertTrue(result['success'], result)
        self.assertTrue(self.find_overdue.called)
        self.assertEqual(self.ledger.count_open_rentals(self.item_id), 1)

    def test_join_queue(self):
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        result = self.orchestrator.join_queue(self.users[1], self.item_id)

        self.assertTrue(result['success'], result)
        self.assertEqual(result['position'], 1)

    def test_grant_queue_entry(self):
        """반납 후 대기열 승인"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        entry = self.orchestrator.join_queue(self.users[1], self.item_id)['waiting']
        self.orchestrator.return_item(rental['id'])
        calls_before = self.find_overdue.call_count

        result = self.orchestrator.grant_queue_entry(entry['id'])

        self.assertTrue(result['success'], result)
        self.assertEqual(result['rental']['user_id'], self.users[1])
        self.assertGreater(self.find_overdue.call_count, calls_before)
        self.assertEqual(self.waiting.count(self.item_id), 0)


class TestConcurrentRent(OrchestratorTestCase):
    """동시 대여 요청"""

    def _run_threads(self, targets):
        results = []
        results_lock = threading.Lock()
        barrier = threading.Barrier(len(targets))

        def worker(call):
            barrier.wait()
            result = call()
            with results_lock:
                results.append(result)

        threads = [threading.Thread(target=worker, args=(call,)) for call in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return results

    def test_only_one_concurrent_rent_succeeds(self):
        """같은 물품 동시 대여 10건 중 1건만 성공"""
        user_ids = [self._create_user(f'동시{i}', f'0109999000{i}', '남') for i in range(10)]

        results = self._run_threads([
            (lambda user_id=user_id: self.orchestrator.rent_now(user_id, self.item_id, 1, 0))
            for user_id in user_ids
        ])

        successes = [result for result in results if result['success']]
        self.assertEqual(len(results), 10)
        self.assertEqual(len(successes), 1)
        self.assertEqual({result['error'] for result in results if not result['success']}, {'ITEM_OCCUPIED'})
        self.assertEqual(self.ledger.count_open_rentals(self.item_id), 1)

    def test_two_kiosks_on_same_database(self):
        """별도 연결(키오스크 2대)에서 동시 대여해도 1건만 성공"""
        other_db = create_database_manager(self.db_path, initialize=False)
        other = create_rental_orchestrator(other_db, clock=self.clock)

        try:
            results = self._run_threads([
                lambda: self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0),
                lambda: other.rent_now(self.users[1], self.item_id, 0, 1),
            ])
        finally:
            other_db.close()

        self.assertEqual(sum(1 for result in results if result['success']), 1)
        self.assertEqual(self.ledger.count_open_rentals(self.item_id), 1)

    def test_concurrent_join_queue_same_user(self):
        """같은 사용자 동시 대기열 등록은 1건만"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        results = self._run_threads([
            lambda: self.orchestrator.join_queue(self.users[1], self.item_id)
            for _ in range(5)
        ])

        self.assertEqual(sum(1 for result in results if result['success']), 1)
        self.assertEqual(self.waiting.count(self.item_id), 1)


class TestWaitingQueue(OrchestratorTestCase):
    """대기열 등록/승인/취소"""

    def test_join_returns_position(self):
        """등록 순번 반환"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        first = self.orchestrator.join_queue(self.users[1], self.item_id)
        self.clock.advance(1)
        second = self.orchestrator.join_queue(self.users[2], self.item_id, 2, 0)

        self.assertEqual(first['position'], 1)
        self.assertEqual(second['position'], 2)
        self.assertEqual(second['waiting']['male_count'], 2)

    def test_join_allowed_when_available(self):
        """대여 가능 상태에서도 대기열 등록 가능"""
        result = self.orchestrator.join_queue(self.users[0], self.item_id)
        self.assertTrue(result['success'])
        self.assertEqual(result['position'], 1)

    def test_join_duplicate(self):
        """같은 사용자-물품 중복 등록 불가"""
        self.orchestrator.join_queue(self.users[1], self.item_id)
        result = self.orchestrator.join_queue(self.users[1], self.item_id)

        self.assertEqual(result['error'], 'ALREADY_QUEUED')
        self.assertEqual(self.waiting.count(self.item_id), 1)

    def test_join_plain_item(self):
        """일반 물품은 대기열 미지원"""
        plain_id = self._create_item('물티슈')
        result = self.orchestrator.join_queue(self.users[0], plain_id)

        self.assertEqual(result['error'], 'QUEUE_NOT_SUPPORTED')

    def test_join_emits_queue_event(self):
        """등록 시 대기열 변경 알림"""
        self.orchestrator.join_queue(self.users[1], self.item_id)
        self.assertEqual(self.events, [(QUEUE_CHANGED, self.item_id)])

    def test_fifo_grant_shifts_positions(self):
        """첫 순번 승인 후 나머지 순번이 하나씩 당겨짐"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        for user_id in self.users[1:]:
            self.clock.advance(1)
            self.orchestrator.join_queue(user_id, self.item_id)

        self.orchestrator.return_item(rental['rental']['id'])
        granted = self.orchestrator.grant_next_in_queue(self.item_id)

        self.assertTrue(granted['success'])
        self.assertEqual(granted['rental']['user_id'], self.users[1])

        remaining = self.orchestrator.get_waiting_list(self.item_id)['data']
        self.assertEqual([entry['user_id'] for entry in remaining], self.users[2:])
        self.assertEqual([entry['position'] for entry in remaining], [1, 2])

    def test_grant_when_occupied_keeps_entry(self):
        """대여 중이면 승인 실패, 대기 항목은 유지"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        entry = self.orchestrator.join_queue(self.users[1], self.item_id)['waiting']

        result = self.orchestrator.grant_queue_entry(entry['id'])

        self.assertEqual(result['error'], 'ITEM_OCCUPIED')
        self.assertIsNotNone(self.waiting.find_entry(entry['id']))

    def test_grant_out_of_order(self):
        """관리자는 순서와 관계없이 승인 가능"""
        self.orchestrator.join_queue(self.users[1], self.item_id)
        self.clock.advance(1)
        second = self.orchestrator.join_queue(self.users[2], self.item_id)['waiting']

        result = self.orchestrator.grant_queue_entry(second['id'])

        self.assertTrue(result['success'])
        self.assertEqual(result['rental']['user_id'], self.users[2])
        self.assertEqual(self.waiting.count(self.item_id), 1)

    def test_grant_uses_stored_party_counts(self):
        """승인 시 대기 항목의 인원수 사용"""
        entry = self.orchestrator.join_queue(self.users[1], self.item_id, 1, 3)['waiting']

        result = self.orchestrator.grant_queue_entry(entry['id'])

        self.assertEqual((result['rental']['male_count'], result['rental']['female_count']), (1, 3))
        self.assertEqual(result['rental']['return_due_date'], NOON + 1800)

    def test_grant_missing_entry(self):
        """없는 대기 항목"""
        self.assertEqual(self.orchestrator.grant_queue_entry(9999)['error'], 'NOT_FOUND')
        self.assertEqual(self.orchestrator.grant_next_in_queue(self.item_id)['error'], 'NOT_FOUND')

    def test_grant_daily_cap_deletes_entry(self):
        """승인 시 하루 최대 횟수 초과면 대기 항목 삭제"""
        capped_id = self._create_item('노래방', is_time_limited=True, rental_time_minutes=30,
                                      max_rentals_per_user=1)
        first = self.orchestrator.rent_now(self.users[0], capped_id, 1, 0)
        self.orchestrator.return_item(first['rental']['id'])
        entry = self.orchestrator.join_queue(self.users[0], capped_id)['waiting']

        result = self.orchestrator.grant_queue_entry(entry['id'])

        self.assertFalse(result['success'])
        self.assertEqual(result['error'], 'DAILY_CAP_EXCEEDED')
        self.assertIn('대기열에서 삭제', result['message'])
        self.assertIsNone(self.waiting.find_entry(entry['id']))
        self.assertEqual(self.ledger.count_open_rentals(capped_id), 0)

    def test_grant_after_time_limit_disabled(self):
        """대기 중 일반 물품으로 바뀐 경우 (연쇄 정리로 항목이 사라짐)"""
        entry = self.orchestrator.join_queue(self.users[1], self.item_id)['waiting']
        self.orchestrator.item_service.update_item(self.item_id, {'is_time_limited': False})

        self.assertEqual(self.orchestrator.grant_queue_entry(entry['id'])['error'], 'NOT_FOUND')

    def test_cancel_entry(self):
        """대기 취소"""
        entry = self.orchestrator.join_queue(self.users[1], self.item_id)['waiting']

        result = self.orchestrator.cancel_queue_entry(entry['id'])

        self.assertTrue(result['success'])
        self.assertEqual(self.waiting.count(self.item_id), 0)
        self.assertEqual(self.orchestrator.cancel_queue_entry(entry['id'])['error'], 'NOT_FOUND')

    def test_check_user_rental_status(self):
        """사용자 대여/대기 상태"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        self.orchestrator.join_queue(self.users[1], self.item_id)
        self.clock.advance(1)
        self.orchestrator.join_queue(self.users[2], self.item_id)

        renting = self.orchestrator.check_user_rental_status(self.users[0], self.item_id)
        waiting = self.orchestrator.check_user_rental_status(self.users[2], self.item_id)
        idle = self.orchestrator.check_user_rental_status(self.users[3], self.item_id)

        self.assertTrue(renting['is_renting'])
        self.assertTrue(waiting['is_waiting'])
        self.assertEqual(waiting['position'], 2)
        self.assertFalse(idle['is_renting'])
        self.assertFalse(idle['is_waiting'])

    def test_check_user_rental_status_after_expiry(self):
        """반납 예정 시각이 지난 대여는 대여 중으로 보지 않음"""
        rental_id = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']['id']
        self.clock.now = NOON + 31 * 60

        result = self.orchestrator.check_user_rental_status(self.users[0], self.item_id)

        self.assertTrue(result['success'])
        self.assertFalse(result['is_renting'])
        self.assertTrue(self.ledger.find_record(rental_id).is_returned)

    def test_waiting_entries_admin_list(self):
        """관리자 전체 대기열"""
        other_id = self._create_item('탁구채', is_time_limited=True, rental_time_minutes=20)
        self.orchestrator.join_queue(self.users[0], self.item_id)
        self.clock.advance(1)
        self.orchestrator.join_queue(self.users[1], other_id)

        result = self.orchestrator.get_waiting_entries(page=1, per_page=10)

        self.assertEqual(result['total_count'], 2)
        self.assertEqual([entry['item_name'] for entry in result['data']], ['보드게임', '탁구채'])


class TestReturnAndExtend(OrchestratorTestCase):
    """반납 / 연장"""

    def test_return_before_due(self):
        """반납 예정 시각 전 수동 반납"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        self.clock.advance(5 * 60)

        result = self.orchestrator.return_item(rental['id'])

        self.assertTrue(result['success'])
        self.assertIsNone(result['promoted_rental'])
        record = self.ledger.find_record(rental['id'])
        self.assertTrue(record.is_returned)
        self.assertTrue(record.is_manual_return)
        self.assertEqual(record.return_date, NOON + 300)

    def test_return_twice(self):
        """이미 반납된 기록"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        self.orchestrator.return_item(rental['id'])

        self.assertEqual(self.orchestrator.return_item(rental['id'])['error'], 'VALIDATION_ERROR')
        self.assertEqual(self.orchestrator.return_item(9999)['error'], 'NOT_FOUND')

    def test_return_with_auto_promote(self):
        """자동 승급: 하루 최대 횟수 초과 대기자는 건너뛰고 다음 대기자에게 대여"""
        capped_id = self._create_item('노래방', is_time_limited=True, rental_time_minutes=30,
                                      max_rentals_per_user=1)
        used = self.orchestrator.rent_now(self.users[1], capped_id, 0, 1)
        self.orchestrator.return_item(used['rental']['id'])

        current = self.orchestrator.rent_now(self.users[0], capped_id, 1, 0)
        skipped = self.orchestrator.join_queue(self.users[1], capped_id)['waiting']
        self.clock.advance(1)
        self.orchestrator.join_queue(self.users[2], capped_id)

        self.db.set_system_setting('auto_promote_queue', True, 'boolean')
        result = self.orchestrator.return_item(current['rental']['id'])

        self.assertTrue(result['success'])
        self.assertEqual(result['promoted_rental']['user_id'], self.users[2])
        self.assertIsNone(self.waiting.find_entry(skipped['id']))
        self.assertEqual(self.waiting.count(capped_id), 0)
        self.assertEqual(self.ledger.find_open_rental(capped_id).user_id, self.users[2])

    def test_extend_blocked_by_waiters(self):
        """대기자가 있으면 연장 불가, 취소 후 연장 가능"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        entry = self.orchestrator.join_queue(self.users[1], self.item_id)['waiting']

        blocked = self.orchestrator.extend_rental(rental['id'])
        self.assertEqual(blocked['error'], 'EXTEND_BLOCKED_BY_WAITERS')
        self.assertEqual(self.ledger.find_record(rental['id']).return_due_date, NOON + 1800)

        self.orchestrator.cancel_queue_entry(entry['id'])
        extended = self.orchestrator.extend_rental(rental['id'])

        self.assertTrue(extended['success'])
        self.assertEqual(extended['return_due_date'], NOON + 1800 + 1800)
        self.assertEqual(self.ledger.find_record(rental['id']).return_due_date, NOON + 3600)

    def test_extend_expired_rental(self):
        """만료된 대여는 연장 전에 정리되어 연장 불가"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        self.clock.now = NOON + 1800 + 1

        result = self.orchestrator.extend_rental(rental['id'])

        self.assertEqual(result['error'], 'VALIDATION_ERROR')
        self.assertFalse(self.ledger.find_record(rental['id']).is_manual_return)

    def test_extend_missing_record(self):
        """없는 대여 기록"""
        self.assertEqual(self.orchestrator.extend_rental(9999)['error'], 'NOT_FOUND')

    def test_delete_open_record_frees_item(self):
        """미반납 기록 삭제 시 물품이 다시 대여 가능"""
        rental = self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)['rental']
        self.events.clear()

        result = self.orchestrator.delete_rental_record(rental['id'])

        self.assertTrue(result['success'])
        self.assertEqual(self.events, [(ITEM_OCCUPANCY_CHANGED, self.item_id)])
        self.assertEqual(self.orchestrator.get_item_status(self.item_id)['item']['status'], 'AVAILABLE')
        self.assertEqual(self.orchestrator.delete_rental_record(rental['id'])['error'], 'NOT_FOUND')


class TestQueries(OrchestratorTestCase):
    """조회"""

    def test_item_status(self):
        """물품 상태 조회 (만료 정리 포함)"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        self.assertEqual(self.orchestrator.get_item_status(self.item_id)['item']['status'], 'RENTED')

        self.clock.now = NOON + 1800 + 1
        self.assertEqual(self.orchestrator.get_item_status(self.item_id)['item']['status'], 'AVAILABLE')
        self.assertEqual(self.orchestrator.get_item_status(9999)['error'], 'NOT_FOUND')

    def test_all_item_statuses(self):
        """전체 물품 상태"""
        self._create_item('숨김', is_hidden=True)

        visible = self.orchestrator.get_all_item_statuses()['items']
        everything = self.orchestrator.get_all_item_statuses(include_hidden=True)['items']

        self.assertEqual(len(visible), 1)
        self.assertEqual(len(everything), 2)

    def test_active_rentals_with_wait_count(self):
        """미반납 시간제 대여 + 대기 인원"""
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)
        self.orchestrator.join_queue(self.users[1], self.item_id)
        self.orchestrator.join_queue(self.users[2], self.item_id)

        data = self.orchestrator.get_active_rentals_with_wait_count()['data']

        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['user_id'], self.users[0])
        self.assertEqual(data[0]['wait_count'], 2)

    def test_rental_records_filters(self):
        """대여 이력 필터/페이지"""
        plain_id = self._create_item('물티슈')
        self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)
        self.clock.advance(1)
        self.orchestrator.rent_now(self.users[1], plain_id, 0, 1)
        self.clock.advance(1)
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        by_user = self.orchestrator.get_rental_records({'user_name': '김철수'})
        by_item = self.orchestrator.get_rental_records({'item_name': '물티슈', 'per_page': 1})
        today = datetime.fromtimestamp(NOON).strftime('%Y-%m-%d')
        by_date = self.orchestrator.get_rental_records({'start_date': today, 'end_date': today})

        self.assertEqual(by_user['total_count'], 2)
        self.assertEqual(by_item['total_count'], 2)
        self.assertEqual(len(by_item['data']), 1)
        self.assertEqual(by_item['data'][0]['user_name'], '이영희')
        self.assertEqual(by_date['total_count'], 3)

    def test_rental_records_invalid_date(self):
        """잘못된 날짜 형식"""
        result = self.orchestrator.get_rental_records({'start_date': '10/03/2026'})
        self.assertEqual(result['error'], 'VALIDATION_ERROR')

    def test_user_rental_records(self):
        """사용자 한 명의 대여 이력"""
        plain_id = self._create_item('물티슈')
        self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)
        self.clock.advance(1)
        self.orchestrator.rent_now(self.users[1], plain_id, 0, 1)
        self.clock.advance(1)
        self.orchestrator.rent_now(self.users[0], self.item_id, 1, 0)

        mine = self.orchestrator.get_user_rental_records(self.users[0])
        plain_only = self.orchestrator.get_user_rental_records(self.users[0], {'item_name': '물티슈'})
        nothing = self.orchestrator.get_user_rental_records(self.users[3])

        self.assertEqual(mine['total_count'], 2)
        self.assertEqual({row['user_id'] for row in mine['data']}, {self.users[0]})
        self.assertEqual(mine['data'][0]['item_name'], '보드게임')
        self.assertEqual(plain_only['total_count'], 1)
        self.assertTrue(nothing['success'])
        self.assertEqual(nothing['data'], [])
        self.assertEqual(self.orchestrator.get_user_rental_records(9999)['error'], 'NOT_FOUND')
        self.assertEqual(
            self.orchestrator.get_user_rental_records(self.users[0], {'end_date': 'today'})['error'],
            'VALIDATION_ERROR'
        )

    def test_available_rental_years(self):
        """대여 기록이 있는 연도 (최신순, 중복 없음)"""
        plain_id = self._create_item('물티슈')
        self.assertEqual(self.orchestrator.get_available_rental_years()['data'], [])

        self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)
        self.clock.advance(1)
        self.orchestrator.rent_now(self.users[1], plain_id, 0, 1)
        self.clock.now = NOON - 400 * DAY
        self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)

        years = self.orchestrator.get_available_rental_years()['data']
        this_year = datetime.fromtimestamp(NOON).year

        self.assertEqual(years, [this_year, datetime.fromtimestamp(NOON - 400 * DAY).year])

    def test_available_rental_years_uses_daily_window_timezone(self):
        """연도 경계는 설정 시간대 기준"""
        plain_id = self._create_item('물티슈')
        self.clock.now = int(datetime(2025, 12, 31, 23, 30, tzinfo=timezone.utc).timestamp())
        self.orchestrator.rent_now(self.users[0], plain_id, 1, 0)

        self.orchestrator.update_setting('daily_window_timezone', 'UTC')
        self.assertEqual(self.orchestrator.get_available_rental_years()['data'], [2025])

        self.orchestrator.update_setting('daily_window_timezone', 'Asia/Seoul')
        self.assertEqual(self.orchestrator.get_available_rental_years()['data'], [2026])

    def test_item_names(self):
        """삭제되지 않은 물품명 목록 (이름순)"""
        self._create_item('물티슈')
        removed_id = self._create_item('탁구채', is_time_limited=True, rental_time_minutes=20)
        self.orchestrator.item_service.delete_item(removed_id)

        result = self.orchestrator.get_item_names()

        self.assertTrue(result['success'])
        self.assertEqual(result['data'], ['물티슈', '보드게임'])

    def test_all_users(self):
        """전체 사용자 목록 (이름순)"""
        result = self.orchestrator.get_all_users()

        self.assertTrue(result['success'])
        self.assertEqual([user['name'] for user in result['data']], ['김철수', '박민수', '이영희', '최지은'])

    def test_settings(self):
        """운영 설정 조회/변경과 검증"""
        self.assertEqual(self.orchestrator.get_settings()['settings'],
                         {'daily_window_timezone': 'local', 'auto_promote_queue': False})

        updated = self.orchestrator.update_setting('auto_promote_queue', True)
        self.assertTrue(updated['success'])
        self.assertTrue(updated['settings']['auto_promote_queue'])

        self.assertEqual(self.orchestrator.update_setting('auto_promote_queue', 'false')['error'],
                         'VALIDATION_ERROR')
        self.assertEqual(self.orchestrator.update_setting('daily_window_timezone', 'Mars/Olympus')['error'],
                         'VALIDATION_ERROR')
        self.assertEqual(self.orchestrator.update_setting('sweep_limit', 5)['error'], 'NOT_FOUND')
        self.assertTrue(self.orchestrator.get_settings()['settings']['auto_promote_queue'])


class TestEndToEnd(OrchestratorTestCase):
    """대여 → 대기 → 반납 → 승인 시나리오"""

    def test_rent_queue_return_grant(self):
        item_id = self._create_item('A', is_time_limited=True, rental_time_minutes=30,
                                    max_rentals_per_user=2)
        u1, u2 = self.users[0], self.users[1]

        rented = self.orchestrator.rent_now(u1, item_id, 1, 0)
        self.assertTrue(rented['success'])
        self.assertEqual(rented['rental']['return_due_date'], NOON + 1800)

        self.assertEqual(self.orchestrator.rent_now(u2, item_id, 0, 1)['error'], 'ITEM_OCCUPIED')

        joined = self.orchestrator.join_queue(u2, item_id)
        self.assertTrue(joined['success'])
        self.assertEqual(joined['position'], 1)

        self.clock.advance(10 * 60)
        returned = self.orchestrator.return_item(rented['rental']['id'])
        self.assertTrue(returned['success'])
        self.assertTrue(self.ledger.find_record(rented['rental']['id']).is_returned)

        granted = self.orchestrator.grant_queue_entry(joined['waiting']['id'])
        self.assertTrue(granted['success'])
        self.assertEqual(granted['rental']['user_id'], u2)
        self.assertFalse(granted['rental']['is_returned'])
        self.assertEqual(self.waiting.count(item_id), 0)
        self.assertEqual(self.ledger.count_open_rentals(item_id), 1)


if __name__ == '__main__':
    unittest.main()
