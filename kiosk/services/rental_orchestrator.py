"""
대여 오케스트레이터 (키오스크/관리자 대여 작업)

- 바로 대여, 대기열 등록, 대기열 승인/취소, 반납, 연장
- 모든 변경 작업은 만료 대여 정리 후 물품 단위 트랜잭션 안에서 실행
- 결과는 항상 결과 딕셔너리로 반환 (예외를 밖으로 던지지 않음)
- 변경 알림은 커밋 이후에만 발행
"""

import logging
import sqlite3
import time
from typing import Any, Callable, Dict, Optional, Tuple

from kiosk.models.item import Item
from kiosk.models.user import GeneralUser
from kiosk.models.waiting import WaitingEntry
from kiosk.services.daily_window import LOCAL_TIMEZONE, resolve_timezone
from kiosk.services.expiry_sweeper import ExpirySweeper
from kiosk.services.item_service import ItemService
from kiosk.services.notifier import ChangeNotifier, PendingEvents
from kiosk.services.rental_ledger import RentalLedger
from kiosk.services.results import ErrorKind, error_result, success_result
from kiosk.services.user_service import UserService
from kiosk.services.waiting_queue import WaitingQueue
from kiosk_db import DatabaseManager, TransactionManager, create_transaction_manager
from kiosk_db.transaction_manager import TransactionType

logger = logging.getLogger(__name__)

MAX_PROMOTION_ATTEMPTS = 100


class RentalOrchestrator:
    """대여/대기열 상태 전이 관리"""

    def __init__(self, db: DatabaseManager, tx_manager: TransactionManager,
                 item_service: ItemService, user_service: UserService,
                 ledger: RentalLedger, waiting: WaitingQueue, notifier: ChangeNotifier,
                 clock: Callable[[], int] = None):
        """
        Args:
            db: 연결된 DatabaseManager
            tx_manager: 물품 단위 트랜잭션 매니저
            item_service: 물품 설정/상태
            user_service: 사용자 조회
            ledger: 대여 장부
            waiting: 대기열
            notifier: 변경 알림
            clock: 현재 시각(epoch 초) 함수, 테스트에서 주입
        """
        self.db = db
        self.tx_manager = tx_manager
        self.item_service = item_service
        self.user_service = user_service
        self.ledger = ledger
        self.waiting = waiting
        self.notifier = notifier
        self.clock = clock or (lambda: int(time.time()))

        self.sweeper = ExpirySweeper(db, ledger, notifier, self.clock,
                                     on_expired=self._on_item_expired)

        logger.info("RentalOrchestrator 초기화 완료")

    # =====================================================
    # 내부 공통
    # =====================================================

    def _sweep(self):
        """변경 작업 전 만료 대여 정리 (실패해도 계속 진행)"""
        self.sweeper.sweep()

    def _auto_promote_enabled(self) -> bool:
        return bool(self.db.get_system_setting('auto_promote_queue', False))

    def _find_kiosk_item(self, item_id: int) -> Optional[Item]:
        """키오스크에서 선택 가능한 물품 (삭제/숨김 제외)"""
        item = self.item_service.get_item(item_id)
        if not item or not item.is_rentable:
            return None
        return item

    def _resolve_party(self, item: Item, user: GeneralUser, male_count: Any, female_count: Any,
                       require_party: bool) -> Tuple[int, int]:
        """대여 인원수 결정

        자동 성별 집계 물품은 입력값을 무시하고 사용자 성별로 1명을 센다.

        Raises:
            ValueError: 인원수가 올바르지 않은 경우
        """
        if item.is_automatic_gender_count:
            counts = user.party_counts()
            if counts:
                return counts['male'], counts['female']
            logger.warning(f"자동 성별 집계 불가, 입력 인원수 사용: user={user.id}, gender={user.gender!r}")

        try:
            male = int(male_count or 0)
            female = int(female_count or 0)
        except (TypeError, ValueError):
            raise ValueError('인원수는 숫자로 입력해주세요.')

        if male < 0 or female < 0:
            raise ValueError('인원수는 0 이상이어야 합니다.')
        if require_party and male + female < 1:
            raise ValueError('대여 인원을 1명 이상 입력해주세요.')
        return male, female

    # =====================================================
    # 바로 대여
    # =====================================================

    def rent_now(self, user_id: int, item_id: int,
                 male_count: Any = 0, female_count: Any = 0) -> Dict[str, Any]:
        """바로 대여

        검증 순서: 물품 → 사용자 → 점유 여부 → 인원수 → 하루 대여 횟수

        Args:
            user_id: 사용자 ID
            item_id: 물품 ID
            male_count: 남성 인원
            female_count: 여성 인원

        Returns:
            대여 결과 (성공 시 rental 포함)
        """
        self._sweep()
        events = PendingEvents(self.notifier)

        try:
            with self.tx_manager.item_transaction(item_id, TransactionType.RENT):
                now = self.clock()

                item = self._find_kiosk_item(item_id)
                if not item:
                    return error_result(ErrorKind.NOT_FOUND, '해당 아이템을 찾을 수 없습니다.')

                user = self.user_service.find_user_by_id(user_id)
                if not user:
                    return error_result(ErrorKind.NOT_FOUND, '사용자 정보를 찾을 수 없습니다.')

                if item.is_time_limited and self.ledger.find_open_rental(item.id):
                    logger.warning(f"대여 거부 (대여 중): item={item_id}, user={user_id}")
                    return error_result(ErrorKind.ITEM_OCCUPIED)

                try:
                    male, female = self._resolve_party(item, user, male_count, female_count,
                                                       require_party=True)
                except ValueError as e:
                    return error_result(ErrorKind.VALIDATION_ERROR, str(e))

                if self.ledger.is_daily_cap_reached(user.id, item, now):
                    logger.warning(f"대여 거부 (하루 최대 횟수): item={item_id}, user={user_id}")
                    return error_result(ErrorKind.DAILY_CAP_EXCEEDED)

                record = self.ledger.insert_rental(user, item, male, female, now)
                if item.is_time_limited:
                    events.occupancy(item.id)

        except sqlite3.IntegrityError as e:
            # 다른 프로세스가 먼저 대여한 경우 (미반납 1건 인덱스)
            events.discard()
            logger.warning(f"대여 거부 (동시 대여): item={item_id}, user={user_id}, {e}")
            return error_result(ErrorKind.ITEM_OCCUPIED)
        except Exception as e:
            events.discard()
            logger.error(f"대여 처리 오류: item={item_id}, user={user_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR)

        events.flush()
        logger.info(f"대여 완료: rental_id={record.id}, item={item_id}, user={user_id}")
        return success_result('아이템 대여가 완료되었습니다.', rental=record.to_dict())

    # =====================================================
    # 대기열
    # =====================================================

    def join_queue(self, user_id: int, item_id: int,
                   male_count: Any = None, female_count: Any = None) -> Dict[str, Any]:
        """대기열 등록

        Returns:
            등록 결과 (waiting, position 포함)
        """
        self._sweep()
        events = PendingEvents(self.notifier)

        try:
            with self.tx_manager.item_transaction(item_id, TransactionType.JOIN_QUEUE):
                now = self.clock()

                item = self._find_kiosk_item(item_id)
                if not item:
                    return error_result(ErrorKind.NOT_FOUND, '해당 아이템을 찾을 수 없습니다.')

                if not item.supports_queue:
                    return error_result(ErrorKind.QUEUE_NOT_SUPPORTED)

                user = self.user_service.find_user_by_id(user_id)
                if not user:
                    return error_result(ErrorKind.NOT_FOUND, '사용자 정보를 찾을 수 없습니다.')

                if self.waiting.find_user_entry(user.id, item.id):
                    return error_result(ErrorKind.ALREADY_QUEUED)

                try:
                    male, female = self._resolve_party(item, user, male_count, female_count,
                                                       require_party=False)
                except ValueError as e:
                    return error_result(ErrorKind.VALIDATION_ERROR, str(e))

                entry = self.waiting.insert(user.id, item.id, now, male, female)
                entry.position = self.waiting.count(item.id)
                events.queue(item.id)

        except sqlite3.IntegrityError as e:
            events.discard()
            logger.warning(f"대기열 등록 거부 (중복): item={item_id}, user={user_id}, {e}")
            return error_result(ErrorKind.ALREADY_QUEUED)
        except Exception as e:
            events.discard()
            logger.error(f"대기열 등록 오류: item={item_id}, user={user_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대기열 등록 중 오류가 발생했습니다.')

        events.flush()
        return success_result('대기열에 성공적으로 등록되었습니다.',
                              waiting=entry.to_dict(), position=entry.position)

    def grant_queue_entry(self, entry_id: int) -> Dict[str, Any]:
        """대기열 항목 승인 (관리자)

        순서와 관계없이 지정한 항목을 승인한다. 하루 최대 횟수를 넘은 경우
        항목을 삭제하고 실패를 반환한다.
        """
        self._sweep()

        entry = self.waiting.find_entry(entry_id)
        if not entry:
            return error_result(ErrorKind.NOT_FOUND, '대기열 항목을 찾을 수 없습니다.')

        return self._grant(entry.item_id, lambda: self.waiting.find_entry(entry_id))

    def grant_next_in_queue(self, item_id: int) -> Dict[str, Any]:
        """물품 대기열의 첫 순번 승인"""
        self._sweep()
        return self._grant(item_id, lambda: self.waiting.head(item_id))

    def _grant(self, item_id: int, load_entry: Callable[[], Optional[WaitingEntry]]) -> Dict[str, Any]:
        events = PendingEvents(self.notifier)

        try:
            with self.tx_manager.item_transaction(item_id, TransactionType.GRANT):
                entry = load_entry()
                if not entry:
                    return error_result(ErrorKind.NOT_FOUND, '대기열 항목을 찾을 수 없습니다.')
                result = self._grant_entry(entry, events)

        except sqlite3.IntegrityError as e:
            events.discard()
            logger.warning(f"대기열 승인 거부 (동시 대여): item={item_id}, {e}")
            return error_result(ErrorKind.ITEM_OCCUPIED)
        except Exception as e:
            events.discard()
            logger.error(f"대기열 승인 오류: item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대기열 항목 승인 중 오류가 발생했습니다.')

        events.flush()
        return result

    def _grant_entry(self, entry: WaitingEntry, events: PendingEvents) -> Dict[str, Any]:
        """대기열 항목 → 대여 기록 (호출자 트랜잭션 안에서)

        ITEM_OCCUPIED 외의 모든 결과에서 항목은 삭제된다.
        """
        now = self.clock()
        item = self.item_service.get_item(entry.item_id)
        user = self.user_service.find_user_by_id(entry.user_id)

        if not item or item.is_deleted or not user:
            self.waiting.delete(entry.id)
            events.queue(entry.item_id)
            logger.warning(f"대기열 항목 삭제 (물품/사용자 없음): waiting_id={entry.id}")
            return error_result(ErrorKind.NOT_FOUND,
                                '아이템 또는 사용자 정보를 찾을 수 없습니다. 대기열에서 삭제되었습니다.')

        if not item.supports_queue:
            self.waiting.delete(entry.id)
            events.queue(item.id)
            return error_result(ErrorKind.QUEUE_NOT_SUPPORTED,
                                '시간제 대여 아이템이 아니므로 대기열에서 삭제되었습니다.')

        if self.ledger.find_open_rental(item.id):
            return error_result(ErrorKind.ITEM_OCCUPIED,
                                '해당 아이템은 이미 다른 사용자가 이용 중입니다. 먼저 반납 처리를 해주세요.')

        if self.ledger.is_daily_cap_reached(user.id, item, now):
            self.waiting.delete(entry.id)
            events.queue(item.id)
            logger.warning(f"대기열 항목 삭제 (하루 최대 횟수): waiting_id={entry.id}, user={user.id}")
            return error_result(
                ErrorKind.DAILY_CAP_EXCEEDED,
                f'사용자(ID: {user.id})가 하루 최대 대여 횟수를 초과하여 대여할 수 없습니다. '
                f'대기열에서 삭제되었습니다.',
                waiting_id=entry.id,
            )

        male, female = self._resolve_party(item, user, entry.male_count, entry.female_count,
                                           require_party=False)
        record = self.ledger.insert_rental(user, item, male, female, now)
        self.waiting.delete(entry.id)
        events.occupancy(item.id)
        events.queue(item.id)

        logger.info(f"대기열 승인: waiting_id={entry.id} -> rental_id={record.id}")
        return success_result('대기열 항목이 성공적으로 승인되었습니다.',
                              rental=record.to_dict(), waiting_id=entry.id)

    def _promote_next_in_queue(self, item_id: int, events: PendingEvents) -> Optional[Dict[str, Any]]:
        """빈 물품을 대기열 첫 순번에게 자동 대여 (호출자 트랜잭션 안에서)

        하루 최대 횟수 초과/사용자 없음 항목은 건너뛰며 삭제된다.

        Returns:
            새 대여 기록 딕셔너리, 승급된 사람이 없으면 None
        """
        for _ in range(MAX_PROMOTION_ATTEMPTS):
            entry = self.waiting.head(item_id)
            if not entry:
                return None

            result = self._grant_entry(entry, events)
            if result['success']:
                return result['rental']
            if result['error'] == ErrorKind.ITEM_OCCUPIED.value:
                return None

        logger.warning(f"자동 승급 시도 횟수 초과: item={item_id}")
        return None

    def _on_item_expired(self, item_id: int, events: PendingEvents):
        if self._auto_promote_enabled():
            self._promote_next_in_queue(item_id, events)

    def cancel_queue_entry(self, entry_id: int) -> Dict[str, Any]:
        """대기열 항목 취소"""
        self._sweep()

        entry = self.waiting.find_entry(entry_id)
        if not entry:
            return error_result(ErrorKind.NOT_FOUND, '대기열 항목을 찾을 수 없습니다.')

        events = PendingEvents(self.notifier)
        try:
            with self.tx_manager.item_transaction(entry.item_id, TransactionType.CANCEL):
                if not self.waiting.delete(entry_id):
                    return error_result(ErrorKind.NOT_FOUND, '대기열 항목을 찾을 수 없습니다.')
                events.queue(entry.item_id)

        except Exception as e:
            events.discard()
            logger.error(f"대기열 취소 오류: waiting_id={entry_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대기열 항목 취소 중 오류가 발생했습니다.')

        events.flush()
        logger.info(f"대기열 취소: waiting_id={entry_id}, item={entry.item_id}")
        return success_result('대기열 항목이 성공적으로 취소되었습니다.', waiting_id=entry_id)

    # =====================================================
    # 반납 / 연장
    # =====================================================

    def return_item(self, record_id: int) -> Dict[str, Any]:
        """반납 (관리자 수동 반납, 반납 예정 시각과 무관)

        auto_promote_queue 설정이 켜져 있으면 대기열 첫 순번에게 바로 대여한다.
        """
        self._sweep()

        record = self.ledger.find_record(record_id)
        if not record:
            return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')

        events = PendingEvents(self.notifier)
        promoted = None
        try:
            with self.tx_manager.item_transaction(record.item_id, TransactionType.RETURN):
                record = self.ledger.find_record(record_id)
                if not record:
                    return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')
                if record.is_returned:
                    return error_result(ErrorKind.VALIDATION_ERROR, '이미 반납된 대여 기록입니다.')

                now = self.clock()
                self.ledger.mark_returned(record.id, now, manual=True)
                record.is_returned = True
                record.return_date = now
                record.is_manual_return = True

                if record.item_id is not None:
                    events.occupancy(record.item_id)
                    if self._auto_promote_enabled():
                        promoted = self._promote_next_in_queue(record.item_id, events)

        except Exception as e:
            events.discard()
            logger.error(f"반납 처리 오류: rental_id={record_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '반납 중 오류가 발생했습니다.')

        events.flush()
        logger.info(f"반납 완료: rental_id={record_id}, item={record.item_id}, 자동 승급={bool(promoted)}")

        message = '아이템 반납 및 다음 대기자 처리가 완료되었습니다.' if promoted else '아이템이 반납되었습니다.'
        return success_result(message, rental=record.to_dict(), promoted_rental=promoted)

    def extend_rental(self, record_id: int) -> Dict[str, Any]:
        """대여 연장 (대기자가 있으면 불가)

        반납 예정 시각을 물품의 대여 시간만큼 뒤로 미룬다.
        """
        self._sweep()

        record = self.ledger.find_record(record_id)
        if not record:
            return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')

        events = PendingEvents(self.notifier)
        try:
            with self.tx_manager.item_transaction(record.item_id, TransactionType.EXTEND):
                record = self.ledger.find_record(record_id)
                if not record:
                    return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')
                if record.is_returned or record.item_id is None:
                    return error_result(ErrorKind.VALIDATION_ERROR,
                                        '연장할 대여 기록을 찾을 수 없거나, 연장 가능한 항목이 아닙니다.')

                item = self.item_service.get_item(record.item_id)
                if not item or item.is_deleted or not item.rental_time_seconds:
                    return error_result(ErrorKind.VALIDATION_ERROR,
                                        '연장할 아이템 정보를 찾을 수 없거나, 시간제 대여 아이템이 아닙니다.')

                waiting_count = self.waiting.count(item.id)
                if waiting_count > 0:
                    logger.warning(f"연장 거부 (대기자 {waiting_count}명): rental_id={record_id}")
                    return error_result(ErrorKind.EXTEND_BLOCKED_BY_WAITERS)

                base = record.return_due_date if record.return_due_date is not None else self.clock()
                record.return_due_date = base + item.rental_time_seconds
                self.ledger.update_due_date(record.id, record.return_due_date)
                events.occupancy(item.id)

        except Exception as e:
            events.discard()
            logger.error(f"대여 연장 오류: rental_id={record_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대여 시간 연장 중 오류가 발생했습니다.')

        events.flush()
        logger.info(f"대여 연장: rental_id={record_id}, due={record.return_due_date}")
        return success_result('대여 시간이 연장되었습니다.', rental=record.to_dict(),
                              return_due_date=record.return_due_date)

    def delete_rental_record(self, record_id: int) -> Dict[str, Any]:
        """대여 기록 삭제 (관리자)"""
        record = self.ledger.find_record(record_id)
        if not record:
            return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')

        events = PendingEvents(self.notifier)
        try:
            with self.tx_manager.item_transaction(record.item_id, TransactionType.RETURN):
                if not self.ledger.delete_record(record_id):
                    return error_result(ErrorKind.NOT_FOUND, '대여 기록을 찾을 수 없습니다.')
                if record.is_open and record.item_id is not None:
                    events.occupancy(record.item_id)

        except Exception as e:
            events.discard()
            logger.error(f"대여 기록 삭제 오류: rental_id={record_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대여 기록 삭제 중 오류가 발생했습니다.')

        events.flush()
        logger.info(f"대여 기록 삭제: rental_id={record_id}")
        return success_result('대여 기록이 삭제되었습니다.', rental_id=record_id)

    # =====================================================
    # 조회
    # =====================================================

    def run_expiry_sweep(self) -> int:
        """키오스크 대기 화면 복귀/페이지 로드 시 만료 정리"""
        return self.sweeper.sweep()

    def get_item_status(self, item_id: int) -> Dict[str, Any]:
        """물품 상태 (만료 정리 후)"""
        self._sweep()
        try:
            status = self.item_service.get_item_status(item_id)
        except Exception as e:
            logger.error(f"물품 상태 조회 오류: item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR)

        if not status:
            return error_result(ErrorKind.NOT_FOUND, '아이템 정보를 찾을 수 없습니다.')
        return success_result('물품 상태 조회 완료', item=status)

    def get_all_item_statuses(self, include_hidden: bool = False) -> Dict[str, Any]:
        """전체 물품 상태 (만료 정리 후)"""
        self._sweep()
        try:
            statuses = self.item_service.get_all_item_statuses(include_hidden=include_hidden)
        except Exception as e:
            logger.error(f"물품 목록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR)
        return success_result('물품 목록 조회 완료', items=statuses)

    def check_user_rental_status(self, user_id: int, item_id: int) -> Dict[str, Any]:
        """사용자의 물품 대여/대기 상태 (만료 정리 후)

        Returns:
            is_renting, is_waiting, position 포함 결과
        """
        self._sweep()
        try:
            item = self.item_service.get_item(item_id)
            if not item:
                return error_result(ErrorKind.NOT_FOUND, '아이템 정보를 찾을 수 없습니다.')

            if item.is_time_limited:
                open_rental = self.ledger.find_open_rental(item.id)
                if open_rental and open_rental.user_id == user_id:
                    return success_result('대여 중입니다.', is_renting=True, is_waiting=False,
                                          position=None)

            entry = self.waiting.find_user_entry(user_id, item_id)
            if entry:
                return success_result('대기 중입니다.', is_renting=False, is_waiting=True,
                                      position=self.waiting.position_of(entry))

        except Exception as e:
            logger.error(f"사용자 대여 상태 확인 오류: user={user_id}, item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '사용자 대여 상태 확인 중 오류가 발생했습니다.')

        return success_result('대여/대기 기록이 없습니다.', is_renting=False, is_waiting=False,
                              position=None)

    def get_waiting_list(self, item_id: int) -> Dict[str, Any]:
        """물품의 대기자 명단 (FIFO 순, 순번 포함)"""
        try:
            entries = self.waiting.list_for_item(item_id)
        except Exception as e:
            logger.error(f"대기자 명단 조회 오류: item={item_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대기자 명단을 불러오는 데 실패했습니다.')
        return success_result('대기자 명단 조회 완료', data=[entry.to_dict() for entry in entries])

    def get_waiting_entries(self, page: int = 1, per_page: int = 10) -> Dict[str, Any]:
        """전체 대기열 (관리자, 오래된 순)"""
        try:
            result = self.waiting.list_entries(page, per_page)
        except Exception as e:
            logger.error(f"대기열 목록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대기열 항목을 불러오는 데 실패했습니다.')
        return success_result('대기열 조회 완료',
                              data=[entry.to_dict() for entry in result['data']],
                              total_count=result['total_count'])

    def get_active_rentals_with_wait_count(self) -> Dict[str, Any]:
        """시간제 물품의 미반납 대여 + 대기 인원 (만료 정리 후)"""
        self._sweep()
        try:
            data = self.ledger.active_rentals_with_wait_count()
        except Exception as e:
            logger.error(f"활성 대여 목록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '활성 대여 목록을 불러오는 데 실패했습니다.')
        return success_result('활성 대여 조회 완료', data=data)

    def get_rental_records(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """대여 이력 조회 (관리자)"""
        try:
            result = self.ledger.list_records(filters)
        except ValueError as e:
            return error_result(ErrorKind.VALIDATION_ERROR, f'조회 조건이 올바르지 않습니다: {e}')
        except Exception as e:
            logger.error(f"대여 기록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '대여 기록을 불러오는 데 실패했습니다.')
        return success_result('대여 기록 조회 완료',
                              data=[record.to_dict() for record in result['data']],
                              total_count=result['total_count'])

    def get_user_rental_records(self, user_id: int,
                                filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """사용자 한 명의 대여 이력 (관리자)"""
        try:
            if not self.user_service.find_user_by_id(user_id):
                return error_result(ErrorKind.NOT_FOUND, '사용자 정보를 찾을 수 없습니다.')
            result = self.ledger.list_records(dict(filters or {}, user_id=user_id))
        except ValueError as e:
            return error_result(ErrorKind.VALIDATION_ERROR, f'조회 조건이 올바르지 않습니다: {e}')
        except Exception as e:
            logger.error(f"사용자 대여 기록 조회 오류: user={user_id}, {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '사용자의 대여 기록을 불러오는 데 실패했습니다.')
        return success_result('사용자 대여 기록 조회 완료',
                              data=[record.to_dict() for record in result['data']],
                              total_count=result['total_count'])

    def get_available_rental_years(self) -> Dict[str, Any]:
        """대여 기록이 있는 연도 목록 (이력 화면 필터)"""
        try:
            years = self.ledger.available_years()
        except Exception as e:
            logger.error(f"대여 연도 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '사용 가능한 대여 연도를 불러오는 데 실패했습니다.')
        return success_result('대여 연도 조회 완료', data=years)

    def get_item_names(self) -> Dict[str, Any]:
        try:
            names = self.ledger.distinct_item_names()
        except Exception as e:
            logger.error(f"물품명 목록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '물품명을 불러오는 데 실패했습니다.')
        return success_result('물품명 조회 완료', data=names)

    def get_all_users(self) -> Dict[str, Any]:
        """전체 사용자 목록 (관리자)"""
        try:
            users = self.user_service.get_all_users()
        except Exception as e:
            logger.error(f"사용자 목록 조회 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR, '사용자 목록을 불러오는 데 실패했습니다.')
        return success_result('사용자 목록 조회 완료', data=[user.to_dict() for user in users])

    # =====================================================
    # 운영 설정 (관리자)
    # =====================================================

    def get_settings(self) -> Dict[str, Any]:
        settings = {
            'daily_window_timezone': self.ledger.daily_window_timezone(),
            'auto_promote_queue': self._auto_promote_enabled(),
        }
        return success_result('운영 설정 조회 완료', settings=settings)

    def update_setting(self, key: str, value: Any) -> Dict[str, Any]:
        """운영 설정 변경

        Args:
            key: daily_window_timezone ('local' 또는 IANA 시간대 이름)
                 또는 auto_promote_queue (true/false)
            value: 새 값
        """
        if key == 'daily_window_timezone':
            if not isinstance(value, str) or not value:
                return error_result(ErrorKind.VALIDATION_ERROR, '시간대 이름이 필요합니다.')
            if value != LOCAL_TIMEZONE and resolve_timezone(value) is None:
                return error_result(ErrorKind.VALIDATION_ERROR, f'알 수 없는 시간대입니다: {value}')
            setting_type = 'string'
        elif key == 'auto_promote_queue':
            if not isinstance(value, bool):
                return error_result(ErrorKind.VALIDATION_ERROR, 'auto_promote_queue 값은 true/false여야 합니다.')
            setting_type = 'boolean'
        else:
            return error_result(ErrorKind.NOT_FOUND, f'변경할 수 없는 설정입니다: {key}')

        if not self.db.set_system_setting(key, value, setting_type):
            return error_result(ErrorKind.PERSISTENCE_ERROR, '설정을 저장하지 못했습니다.')

        logger.info(f"운영 설정 변경: {key}={value}")
        return self.get_settings()


def create_rental_orchestrator(db: DatabaseManager, notifier: ChangeNotifier = None,
                               clock: Callable[[], int] = None) -> RentalOrchestrator:
    """서비스 묶음 생성

    Args:
        db: 연결된 DatabaseManager
        notifier: 변경 알림 (없으면 새로 생성)
        clock: 현재 시각 함수

    Returns:
        item_service/user_service/ledger/waiting이 연결된 RentalOrchestrator
    """
    notifier = notifier or ChangeNotifier()
    tx_manager = create_transaction_manager(db)
    ledger = RentalLedger(db)
    waiting = WaitingQueue(db)
    user_service = UserService(db)
    item_service = ItemService(db, tx_manager, ledger, waiting, notifier, clock)

    return RentalOrchestrator(db, tx_manager, item_service, user_service,
                              ledger, waiting, notifier, clock)
