from .enums import Role, MerchantStatus, RejectionSource, IdDocumentType, HistoryEvent, ProvisioningStatus
from .auth import User, SessionToken
from .merchants import Merchant, Operator, MerchantHistory, ShortCodeSequence
from .performance import AgentPerformance
from .activity import ActivityLog

__all__ = [
    'Role', 'MerchantStatus', 'RejectionSource', 'IdDocumentType', 'HistoryEvent', 'ProvisioningStatus',
    'User', 'SessionToken',
    'Merchant', 'Operator', 'MerchantHistory', 'ShortCodeSequence',
    'AgentPerformance',
    'ActivityLog',
]
