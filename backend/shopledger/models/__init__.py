from .auth import Profile, SessionToken, ROLE_OWNER, ROLE_STORE_MANAGER, KNOWN_ROLES
from .ledger import Balance, Category, BALANCE_RECORD_ID
from .entries import Sale, SaleItem, Expense, Deposit
from .communications import Notification, ChangeEvent, NOTIFICATION_TYPES

__all__ = [
    'Profile', 'SessionToken', 'ROLE_OWNER', 'ROLE_STORE_MANAGER', 'KNOWN_ROLES',
    'Balance', 'Category', 'BALANCE_RECORD_ID',
    'Sale', 'SaleItem', 'Expense', 'Deposit',
    'Notification', 'ChangeEvent', 'NOTIFICATION_TYPES',
]
