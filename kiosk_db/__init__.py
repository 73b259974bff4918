"""
데이터베이스 패키지

SQLite 기반 물품 대여 키오스크의 데이터베이스 레이어
"""

from .database_manager import DatabaseManager, create_database_manager
from .transaction_manager import TransactionManager, create_transaction_manager

__all__ = ['DatabaseManager', 'TransactionManager', 'create_database_manager', 'create_transaction_manager']
