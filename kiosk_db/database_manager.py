"""
물품 대여 키오스크 SQLite 저장소

연결 하나를 키오스크 요청 스레드와 만료 정리 스레드가 함께 쓰므로
모든 접근은 RLock으로 직렬화하고, 여러 문장에 걸친 쓰기는 transaction() 안에서 한다.
"""

import sqlite3
import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Any, Union
from pathlib import Path
import threading


class DatabaseManager:
    """물품/사용자/대여/대기열 테이블이 있는 SQLite 파일 하나를 관리"""

    def __init__(self, db_path: str = 'instance/kiosk.db'):
        """
        Args:
            db_path: SQLite 데이터베이스 파일 경로
        """
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()  # 연결 하나를 여러 스레드가 공유

    def connect(self) -> bool:
        """데이터베이스 연결

        Returns:
            연결 성공 여부
        """
        try:
            with self._lock:
                if self.conn:
                    self.conn.close()

                parent = Path(self.db_path).parent
                if str(parent) and not parent.exists():
                    parent.mkdir(parents=True, exist_ok=True)

                self.conn = sqlite3.connect(
                    self.db_path,
                    check_same_thread=False,
                    timeout=30.0,
                    isolation_level=None  # autocommit 모드, 트랜잭션은 명시적으로 시작
                )

                self.conn.row_factory = sqlite3.Row
                self.conn.execute("PRAGMA foreign_keys = ON")
                self.conn.execute("PRAGMA journal_mode = WAL")
                self.conn.execute("PRAGMA synchronous = NORMAL")

                self.logger.info(f"데이터베이스 연결 성공: {self.db_path}")
                return True

        except sqlite3.Error as e:
            self.logger.error(f"데이터베이스 연결 실패: {e}")
            return False

    def initialize_schema(self) -> bool:
        """스키마 초기화

        Returns:
            초기화 성공 여부
        """
        try:
            with self._lock:
                if not self.conn:
                    self.logger.error("데이터베이스 연결이 필요합니다")
                    return False

                schema_path = Path(__file__).parent / "schema.sql"

                if not schema_path.exists():
                    self.logger.error(f"스키마 파일을 찾을 수 없습니다: {schema_path}")
                    return False

                with open(schema_path, 'r', encoding='utf-8') as f:
                    schema_sql = f.read()

                self.conn.executescript(schema_sql)
                self.logger.info("데이터베이스 스키마 초기화 완료")
                return True

        except sqlite3.Error as e:
            self.logger.error(f"스키마 초기화 실패: {e}")
            return False

    def execute_query(self, query: str, params: Union[tuple, list, dict] = ()) -> sqlite3.Cursor:
        """쿼리 실행

        실패 시 로그를 남기고 sqlite3.Error를 그대로 전파한다.
        트랜잭션 안에서 호출된 경우 상위 컨텍스트가 롤백한다.

        Args:
            query: SQL 쿼리
            params: 쿼리 파라미터

        Returns:
            커서 객체
        """
        with self._lock:
            if not self.conn:
                raise sqlite3.ProgrammingError("데이터베이스 연결이 필요합니다")

            try:
                cursor = self.conn.execute(query, params)
            except sqlite3.Error as e:
                self.logger.error(f"쿼리 실행 실패: {query[:100]}..., 오류: {e}")
                raise

            self.logger.debug(f"쿼리 실행: {query[:100]}...")
            return cursor

    def fetch_one(self, query: str, params: Union[tuple, list, dict] = ()) -> Optional[sqlite3.Row]:
        """단일 행 조회 (실행과 fetch를 같은 락 안에서 수행)"""
        with self._lock:
            return self.execute_query(query, params).fetchone()

    def fetch_all(self, query: str, params: Union[tuple, list, dict] = ()) -> List[sqlite3.Row]:
        """전체 행 조회 (실행과 fetch를 같은 락 안에서 수행)"""
        with self._lock:
            return self.execute_query(query, params).fetchall()

    def fetch_value(self, query: str, params: Union[tuple, list, dict] = (), default: Any = None) -> Any:
        """첫 행의 첫 컬럼 값 조회 (COUNT 등)"""
        row = self.fetch_one(query, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    @contextmanager
    def transaction(self) -> Iterator['DatabaseManager']:
        """트랜잭션 컨텍스트

        BEGIN IMMEDIATE로 쓰기 잠금을 먼저 잡아 읽기-검증-쓰기 사이에 다른
        연결이 끼어들지 못하게 한다. 블록이 예외로 끝나면 롤백, 정상 종료 시
        커밋한다. 이미 트랜잭션 중이면 바깥 트랜잭션에 합류한다.
        """
        with self._lock:
            if not self.conn:
                raise sqlite3.ProgrammingError("데이터베이스 연결이 필요합니다")

            if self.conn.in_transaction:
                yield self
                return

            self.conn.execute("BEGIN IMMEDIATE")
            self.logger.debug("트랜잭션 시작")
            try:
                yield self
            except BaseException:
                self.conn.rollback()
                self.logger.debug("트랜잭션 롤백")
                raise
            else:
                self.conn.commit()
                self.logger.debug("트랜잭션 커밋")

    def close(self):
        """연결 종료"""
        try:
            with self._lock:
                if self.conn:
                    self.conn.close()
                    self.conn = None
                    self.logger.info("데이터베이스 연결 종료")
        except sqlite3.Error as e:
            self.logger.error(f"연결 종료 실패: {e}")

    # =====================================================
    # 시스템 설정
    # =====================================================

    def get_system_setting(self, key: str, default_value: Any = None) -> Any:
        """시스템 설정 조회

        Args:
            key: 설정 키
            default_value: 기본값

        Returns:
            설정 값
        """
        try:
            row = self.fetch_one(
                "SELECT setting_value, setting_type FROM system_settings WHERE setting_key = ?",
                (key,)
            )
        except sqlite3.Error:
            return default_value

        if not row:
            return default_value

        value = row['setting_value']
        setting_type = row['setting_type']

        try:
            if setting_type == 'integer':
                return int(value)
            elif setting_type == 'boolean':
                return str(value).lower() in ('true', '1', 'yes')
            elif setting_type == 'json':
                return json.loads(value)
            else:
                return value
        except (ValueError, TypeError) as e:
            self.logger.warning(f"시스템 설정 값 변환 실패: {key}={value}, {e}")
            return default_value

    def set_system_setting(self, key: str, value: Any, setting_type: str = 'string') -> bool:
        """시스템 설정 저장

        Args:
            key: 설정 키
            value: 설정 값
            setting_type: 값 타입 (string, integer, boolean, json)

        Returns:
            저장 성공 여부
        """
        if setting_type == 'json':
            str_value = json.dumps(value, ensure_ascii=False)
        elif setting_type == 'boolean':
            str_value = 'true' if value else 'false'
        else:
            str_value = str(value)

        try:
            self.execute_query("""
                INSERT OR REPLACE INTO system_settings
                (setting_key, setting_value, setting_type, updated_at)
                VALUES (?, ?, ?, ?)
            """, (key, str_value, setting_type, datetime.now().isoformat()))
            return True

        except sqlite3.Error as e:
            self.logger.error(f"시스템 설정 저장 실패: {key}={value}, 오류: {e}")
            return False

    def get_database_stats(self) -> Dict[str, Any]:
        """데이터베이스 통계 정보

        Returns:
            통계 정보 딕셔너리
        """
        stats = {}

        try:
            tables = ['items', 'general_users', 'rental_records', 'waiting_queue']

            for table in tables:
                stats[f'{table}_count'] = self.fetch_value(f"SELECT COUNT(*) FROM {table}", default=0)

            stats['open_rentals'] = self.fetch_value(
                "SELECT COUNT(*) FROM rental_records WHERE is_returned = 0", default=0
            )

            db_path = Path(self.db_path)
            if db_path.exists():
                stats['db_size_bytes'] = db_path.stat().st_size
                stats['db_size_mb'] = round(stats['db_size_bytes'] / (1024 * 1024), 2)

            stats['last_updated'] = datetime.now(timezone.utc).isoformat()

        except sqlite3.Error as e:
            self.logger.error(f"통계 정보 조회 실패: {e}")

        return stats


def create_database_manager(db_path: str = 'instance/kiosk.db', initialize: bool = True) -> DatabaseManager:
    """데이터베이스 매니저 생성 및 초기화

    Args:
        db_path: 데이터베이스 파일 경로
        initialize: 스키마 초기화 여부

    Returns:
        초기화된 DatabaseManager 인스턴스
    """
    manager = DatabaseManager(db_path)

    if not manager.connect():
        raise RuntimeError("데이터베이스 연결 실패")

    if initialize:
        if not manager.initialize_schema():
            raise RuntimeError("데이터베이스 스키마 초기화 실패")

    return manager
