from brokerdesk.client.cache import QueryCache
from brokerdesk.client.http import ApiClient, ApiError
from brokerdesk.client.identity import IdentityResolver
from brokerdesk.client.mutations import MutationResult, MutationRunner
from brokerdesk.client.notifications import Notification, Notifier, Variant
from brokerdesk.client.session import DashboardClient, DashboardSession, SessionClosed

__all__ = [
    "QueryCache", "ApiClient", "ApiError", "IdentityResolver", "MutationResult",
    "MutationRunner", "Notification", "Notifier", "Variant",
    "DashboardClient", "DashboardSession", "SessionClosed",
]
