from .auth import User, SessionToken
from .security import SecurityEvent
from .sows import Vendor, SOW, Milestone, SOWApproval, SignatureAuthorityLimit

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'Vendor', 'SOW', 'Milestone', 'SOWApproval', 'SignatureAuthorityLimit',
]
