"""
사용자 조회/등록 서비스 (SQLite 기반)
"""

import sqlite3
from typing import Optional, List, Dict
from kiosk.models.user import GeneralUser, ALLOWED_GENDERS
from kiosk.services.results import ErrorKind, error_result, success_result
from kiosk_db import DatabaseManager
import logging

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    """전화번호 정규화 (공백/하이픈 제거)"""
    return ''.join(ch for ch in (phone or '') if ch.isdigit())


class UserService:
    """키오스크 사용자 조회 및 등록"""

    def __init__(self, db: DatabaseManager):
        """
        Args:
            db: 연결된 DatabaseManager
        """
        self.db = db

    def find_user_by_id(self, user_id: int) -> Optional[GeneralUser]:
        """ID로 사용자 조회"""
        row = self.db.fetch_one("SELECT * FROM general_users WHERE id = ?", (user_id,))
        if not row:
            logger.warning(f"사용자 없음: user_id={user_id}")
            return None
        return GeneralUser.from_db_row(row)

    def find_user_by_identity(self, name: str, phone: str) -> Optional[GeneralUser]:
        """이름 + 전화번호로 사용자 조회 (키오스크 본인 확인)

        Args:
            name: 이름
            phone: 전화번호 (하이픈 유무 무관)

        Returns:
            GeneralUser 또는 None
        """
        row = self.db.fetch_one("""
            SELECT * FROM general_users
            WHERE name = ? AND phone_number = ?
        """, ((name or '').strip(), normalize_phone(phone)))

        if not row:
            return None
        return GeneralUser.from_db_row(row)

    def create_user(self, user_data: Dict) -> Dict:
        """새 사용자 등록

        Args:
            user_data: name, phone_number, gender, birth_date, school,
                personal_info_consent

        Returns:
            등록 결과
        """
        name = (user_data.get('name') or '').strip()
        phone = normalize_phone(user_data.get('phone_number', ''))
        gender = (user_data.get('gender') or '').strip()

        if not name or not phone:
            return error_result(ErrorKind.VALIDATION_ERROR, '이름과 전화번호를 모두 입력해주세요.')

        if gender.upper() not in ALLOWED_GENDERS:
            return error_result(ErrorKind.VALIDATION_ERROR, '성별 값이 올바르지 않습니다.')

        user = GeneralUser(
            id=None,
            name=name,
            phone_number=phone,
            gender=gender,
            birth_date=user_data.get('birth_date'),
            school=user_data.get('school'),
            personal_info_consent=bool(user_data.get('personal_info_consent', False)),
        )

        try:
            with self.db.transaction():
                if self.find_user_by_identity(name, phone):
                    return error_result(ErrorKind.VALIDATION_ERROR, '이미 등록된 사용자입니다.')

                db_data = user.to_db_dict()
                cursor = self.db.execute_query("""
                    INSERT INTO general_users (
                        name, phone_number, gender, birth_date, school, personal_info_consent
                    ) VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    db_data['name'], db_data['phone_number'], db_data['gender'],
                    db_data['birth_date'], db_data['school'], db_data['personal_info_consent']
                ))
                user.id = cursor.lastrowid

        except sqlite3.Error as e:
            logger.error(f"사용자 등록 오류: {e}")
            return error_result(ErrorKind.PERSISTENCE_ERROR)

        logger.info(f"사용자 등록 성공: {user.id} ({user.name})")
        return success_result(f'{user.name}님이 등록되었습니다.', user=user.to_dict())

    def get_all_users(self) -> List[GeneralUser]:
        """모든 사용자 목록 조회"""
        rows = self.db.fetch_all("SELECT * FROM general_users ORDER BY name, id")
        return [GeneralUser.from_db_row(row) for row in rows]
