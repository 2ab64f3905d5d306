"""Database models — re-exports all models.

Import from here:  from app.models import User, Subscription, ...
Or from submodules: from app.models.auth import User
"""

from .base import Base  # noqa: F401

# Accounts & settings
from .auth import User, UserSettings  # noqa: F401

# Email pipeline
from .pipeline import ProcessedMessage  # noqa: F401

# Subscriptions
from .subscriptions import (  # noqa: F401
    SUBSCRIPTION_STATUSES,
    SUBSCRIPTION_TYPES,
    Subscription,
)
