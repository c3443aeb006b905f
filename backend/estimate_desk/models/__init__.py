from .users import User, SessionToken, ROLES, APPROVAL_ROLES, APPROVAL_STATUSES
from .security import SecurityEvent
from .customers import Customer
from .catalog import Brand, Item
from .estimates import Estimate, EstimateLine, DocumentSequence, ESTIMATE_STATUSES, DISCOUNT_TYPES, CUSTOMER_KINDS

__all__ = [
    'User', 'SessionToken', 'ROLES', 'APPROVAL_ROLES', 'APPROVAL_STATUSES',
    'SecurityEvent',
    'Customer',
    'Brand', 'Item',
    'Estimate', 'EstimateLine', 'DocumentSequence',
    'ESTIMATE_STATUSES', 'DISCOUNT_TYPES', 'CUSTOMER_KINDS',
]
