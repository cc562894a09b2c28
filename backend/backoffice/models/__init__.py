from .customers import User, UserProfile, SessionToken, USER_ROLES
from .locations import Location
from .catalog import Service, Product, ProductStock
from .ledger import ServiceTransaction, ProductTransaction, SERVICE_TRANSACTION_TYPES

__all__ = [
    'User', 'UserProfile', 'SessionToken', 'USER_ROLES',
    'Location',
    'Service', 'Product', 'ProductStock',
    'ServiceTransaction', 'ProductTransaction', 'SERVICE_TRANSACTION_TYPES',
]
