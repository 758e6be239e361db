"""SQLAlchemy ORM models for the Data Moodboard API.

Users live in Supabase Auth; ``profiles`` mirrors them by id and carries
the subscription state written by the Stripe webhook.
"""

from moodboard.models.base import Base
from moodboard.models.profile import Profile, ProfileRole, SubscriptionTier
from moodboard.models.dashboard import Dashboard
from moodboard.models.data_table import UserDataTable
from moodboard.models.integration import OAuthState, IntegrationCredential, DataConnection, ApiKey
from moodboard.models.usage import AIImageUsage
from moodboard.models.activity import ActivityLog, BillingEvent

__all__ = [
    "Base",
    "Profile",
    "ProfileRole",
    "SubscriptionTier",
    "Dashboard",
    "UserDataTable",
    "OAuthState",
    "IntegrationCredential",
    "DataConnection",
    "ApiKey",
    "AIImageUsage",
    "ActivityLog",
    "BillingEvent",
]
