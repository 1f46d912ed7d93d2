from .catalog import Card, InventoryRecord, CardSubmission
from .orders import Order
from .activity import ActivityLog
from .auth import User, UserRole, SessionToken

__all__ = [
    'Card', 'InventoryRecord', 'CardSubmission',
    'Order',
    'ActivityLog',
    'User', 'UserRole', 'SessionToken',
]
