"""
일반 사용자 모델
"""

import sqlite3
from typing import Optional, Dict, Any

MALE_VALUES = ('남', '남성', 'MALE', 'M')
FEMALE_VALUES = ('여', '여성', 'FEMALE', 'F')
ALLOWED_GENDERS = MALE_VALUES + FEMALE_VALUES + ('OTHER',)


class GeneralUser:
    """키오스크 사용자 (로그인 없이 이름 + 전화번호로 본인 확인)"""

    def __init__(self, id: int, name: str, phone_number: str,
                 gender: str = '',
                 birth_date: Optional[str] = None,
                 school: Optional[str] = None,
                 personal_info_consent: bool = False):
        self.id = id
        self.name = name
        self.phone_number = phone_number
        self.gender = gender  # 남/여 (MALE/FEMALE도 허용)
        self.birth_date = birth_date  # YYYY-MM-DD
        self.school = school
        self.personal_info_consent = personal_info_consent

    def to_dict(self):
        """딕셔너리로 변환"""
        return {
            'id': self.id,
            'name': self.name,
            'phone_number': self.phone_number,
            'gender': self.gender,
            'birth_date': self.birth_date,
            'school': self.school,
            'personal_info_consent': self.personal_info_consent,
        }

    @property
    def is_male(self):
        return (self.gender or '').strip().upper() in MALE_VALUES

    @property
    def is_female(self):
        return (self.gender or '').strip().upper() in FEMALE_VALUES

    def party_counts(self) -> Optional[Dict[str, int]]:
        """성별 기반 자동 인원수

        Returns:
            {'male': 1, 'female': 0} 형태, 성별을 알 수 없으면 None
        """
        if self.is_male:
            return {'male': 1, 'female': 0}
        if self.is_female:
            return {'male': 0, 'female': 1}
        return None

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> 'GeneralUser':
        """데이터베이스 행에서 GeneralUser 객체 생성"""
        return cls(
            id=row['id'],
            name=row['name'],
            phone_number=row['phone_number'],
            gender=row['gender'] or '',
            birth_date=row['birth_date'],
            school=row['school'],
            personal_info_consent=bool(row['personal_info_consent']),
        )

    def to_db_dict(self) -> Dict[str, Any]:
        """데이터베이스 저장용 딕셔너리 변환"""
        return {
            'name': self.name,
            'phone_number': self.phone_number,
            'gender': self.gender,
            'birth_date': self.birth_date,
            'school': self.school,
            'personal_info_consent': 1 if self.personal_info_consent else 0,
        }

    def __repr__(self):
        return f"<GeneralUser {self.id} ({self.name})>"
