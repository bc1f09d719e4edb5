from .tenancy import Organization, Membership
from .auth import User
from .catalog import Product
from .sales import Transaction, TransactionItem
from .settings import Setting
from .security import SecurityEvent

__all__ = [
    'Organization', 'Membership',
    'User',
    'Product',
    'Transaction', 'TransactionItem',
    'Setting',
    'SecurityEvent',
]
