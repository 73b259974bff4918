"""
대여 기록 모델
"""

import math
import sqlite3
import time
from typing import Optional


class RentalRecord:
    """대여 기록

    user_name/user_phone/item_name/item_category는 대여 시점의 스냅샷이며
    이후 프로필이나 물품 정보가 바뀌어도 갱신하지 않는다.
    """

    def __init__(self, id: Optional[int], user_id: Optional[int], item_id: Optional[int],
                 rental_date: int,
                 return_due_date: Optional[int] = None,
                 is_returned: bool = False,
                 return_date: Optional[int] = None,
                 is_manual_return: bool = False,
                 male_count: int = 0,
                 female_count: int = 0,
                 user_name: Optional[str] = None,
                 user_phone: Optional[str] = None,
                 item_name: Optional[str] = None,
                 item_category: Optional[str] = None):
        self.id = id
        self.user_id = user_id
        self.item_id = item_id
        self.rental_date = rental_date  # epoch 초
        self.return_due_date = return_due_date  # 시간제 물품만 설정
        self.is_returned = is_returned
        self.return_date = return_date
        self.is_manual_return = is_manual_return  # 관리자 수동 반납 / 강제 반납
        self.male_count = male_count
        self.female_count = female_count
        self.user_name = user_name
        self.user_phone = user_phone
        self.item_name = item_name
        self.item_category = item_category

    def to_dict(self):
        """딕셔너리로 변환"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'item_id': self.item_id,
            'rental_date': self.rental_date,
            'return_due_date': self.return_due_date,
            'is_returned': self.is_returned,
            'return_date': self.return_date,
            'is_manual_return': self.is_manual_return,
            'male_count': self.male_count,
            'female_count': self.female_count,
            'user_name': self.user_name,
            'user_phone': self.user_phone,
            'item_name': self.item_name,
            'item_category': self.item_category,
            'is_open': self.is_open,
        }

    @property
    def is_open(self):
        """미반납 여부"""
        return not self.is_returned

    def is_overdue(self, now: Optional[int] = None) -> bool:
        """반납 예정 시각이 지났는지 여부"""
        if self.is_returned or self.return_due_date is None:
            return False
        now = int(time.time()) if now is None else now
        return self.return_due_date < now

    def remaining_minutes(self, now: Optional[int] = None) -> int:
        """반납까지 남은 시간 (분, 올림)"""
        if self.is_returned or self.return_due_date is None:
            return 0
        now = int(time.time()) if now is None else now
        remaining = self.return_due_date - now
        if remaining <= 0:
            return 0
        return math.ceil(remaining / 60)

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> 'RentalRecord':
        """데이터베이스 행에서 RentalRecord 객체 생성"""
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            item_id=row['item_id'],
            rental_date=row['rental_date'],
            return_due_date=row['return_due_date'],
            is_returned=bool(row['is_returned']),
            return_date=row['return_date'],
            is_manual_return=bool(row['is_manual_return']),
            male_count=row['male_count'] or 0,
            female_count=row['female_count'] or 0,
            user_name=row['user_name'],
            user_phone=row['user_phone'],
            item_name=row['item_name'],
            item_category=row['item_category'],
        )

    def __repr__(self):
        state = 'returned' if self.is_returned else 'open'
        return f"<RentalRecord {self.id} (item {self.item_id} -> user {self.user_id}, {state})>"
