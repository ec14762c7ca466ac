# forum_bridge/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .forum import (
    SYSTEM_USER_ID,
    Category,
    CustomField,
    Group,
    GroupUser,
    Post,
    SingleSignOnRecord,
    Topic,
    User,
    UserAvatar,
)
from .importer import ExternalIdMap, ImportRun, ImportRunStatus, ImportSkip, ImportSkipType, MergeLog

__all__ = [
    "db",
    "BaseModel",
    "SYSTEM_USER_ID",
    # Forum models
    "Category",
    "CustomField",
    "Group",
    "GroupUser",
    "Post",
    "SingleSignOnRecord",
    "Topic",
    "User",
    "UserAvatar",
    # Importer models
    "ExternalIdMap",
    "ImportRun",
    "ImportRunStatus",
    "ImportSkip",
    "ImportSkipType",
    "MergeLog",
]
