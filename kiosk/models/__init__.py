from .item import Item
from .rental import RentalRecord
from .user import GeneralUser
from .waiting import WaitingEntry

__all__ = ['Item', 'RentalRecord', 'GeneralUser', 'WaitingEntry']
