"""SQLAlchemy models backing the reference content/user store."""

from .content import ContentItem
from .user import UserAccount, UserPenaltyRecord

__all__ = [
    "ContentItem",
    "UserAccount",
    "UserPenaltyRecord",
]
