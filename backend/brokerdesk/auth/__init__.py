from brokerdesk.auth.roles import RoleLabel, Classification, classify, PRIVILEGE_LEVELS
from brokerdesk.auth.permissions import Capability, CAPABILITY_THRESHOLDS, has_permission, capabilities_for, can_act
from brokerdesk.auth.principal import Principal, IdentityState, IdentityStatus

__all__ = [
    "RoleLabel", "Classification", "classify", "PRIVILEGE_LEVELS",
    "Capability", "CAPABILITY_THRESHOLDS", "has_permission", "capabilities_for", "can_act",
    "Principal", "IdentityState", "IdentityStatus",
]
