"""
물품 모델
"""

import sqlite3
from typing import Optional


class Item:
    """물품 설정 정보"""

    def __init__(self, id: int, name: str, category: str,
                 image_url: Optional[str] = None,
                 is_time_limited: bool = False,
                 rental_time_minutes: Optional[int] = None,
                 max_rentals_per_user: Optional[int] = None,
                 is_automatic_gender_count: bool = False,
                 is_hidden: bool = False,
                 is_deleted: bool = False,
                 display_order: int = 0):
        self.id = id
        self.name = name
        self.category = category
        self.image_url = image_url
        self.is_time_limited = is_time_limited  # 시간제 대여 (대기열 지원)
        self.rental_time_minutes = rental_time_minutes  # 시간제 물품만 사용 (예: 30)
        self.max_rentals_per_user = max_rentals_per_user  # 하루 최대 대여 횟수
        self.is_automatic_gender_count = is_automatic_gender_count  # 인원수를 사용자 성별로 자동 산출
        self.is_hidden = is_hidden
        self.is_deleted = is_deleted
        self.display_order = display_order

    def to_dict(self):
        """딕셔너리로 변환"""
        return {
            'id': self.id,
            'name': self.name,
            'category': self.category,
            'image_url': self.image_url,
            'is_time_limited': self.is_time_limited,
            'rental_time_minutes': self.rental_time_minutes,
            'max_rentals_per_user': self.max_rentals_per_user,
            'is_automatic_gender_count': self.is_automatic_gender_count,
            'is_hidden': self.is_hidden,
            'is_deleted': self.is_deleted,
            'display_order': self.display_order,
        }

    @property
    def is_rentable(self):
        """키오스크에서 대여 가능한 물품인지 (삭제/숨김 제외)"""
        return not self.is_deleted and not self.is_hidden

    @property
    def rental_time_seconds(self) -> Optional[int]:
        """대여 시간 (초)"""
        if not self.is_time_limited or not self.rental_time_minutes:
            return None
        return self.rental_time_minutes * 60

    @property
    def supports_queue(self):
        """대기열 지원 여부"""
        return self.is_time_limited

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> 'Item':
        """데이터베이스 행에서 Item 객체 생성"""
        return cls(
            id=row['id'],
            name=row['name'],
            category=row['category'],
            image_url=row['image_url'],
            is_time_limited=bool(row['is_time_limited']),
            rental_time_minutes=row['rental_time_minutes'],
            max_rentals_per_user=row['max_rentals_per_user'],
            is_automatic_gender_count=bool(row['is_automatic_gender_count']),
            is_hidden=bool(row['is_hidden']),
            is_deleted=bool(row['is_deleted']),
            display_order=row['display_order'] or 0,
        )

    def __repr__(self):
        return f"<Item {self.id} ({self.name})>"
