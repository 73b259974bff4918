"""
대기열 모델
"""

import sqlite3
from typing import Optional


class WaitingEntry:
    """대기열 항목"""

    def __init__(self, id: int, user_id: int, item_id: int, request_date: int,
                 male_count: int = 0, female_count: int = 0,
                 position: Optional[int] = None,
                 user_name: Optional[str] = None,
                 user_phone: Optional[str] = None,
                 item_name: Optional[str] = None):
        self.id = id
        self.user_id = user_id
        self.item_id = item_id
        self.request_date = request_date  # epoch 초, FIFO 기준
        self.male_count = male_count
        self.female_count = female_count
        self.position = position  # 같은 물품 안에서의 1부터 시작하는 순번 (조회 시에만)
        self.user_name = user_name
        self.user_phone = user_phone
        self.item_name = item_name

    def to_dict(self):
        """딕셔너리로 변환"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'item_id': self.item_id,
            'request_date': self.request_date,
            'male_count': self.male_count,
            'female_count': self.female_count,
            'position': self.position,
            'user_name': self.user_name,
            'user_phone': self.user_phone,
            'item_name': self.item_name,
        }

    @classmethod
    def from_db_row(cls, row: sqlite3.Row, position: Optional[int] = None) -> 'WaitingEntry':
        """데이터베이스 행에서 WaitingEntry 객체 생성 (조인 컬럼은 있으면 사용)"""
        keys = row.keys()
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            item_id=row['item_id'],
            request_date=row['request_date'],
            male_count=row['male_count'] or 0,
            female_count=row['female_count'] or 0,
            position=position,
            user_name=row['user_name'] if 'user_name' in keys else None,
            user_phone=row['user_phone'] if 'user_phone' in keys else None,
            item_name=row['item_name'] if 'item_name' in keys else None,
        )

    def __repr__(self):
        return f"<WaitingEntry {self.id} (user {self.user_id} -> item {self.item_id})>"
