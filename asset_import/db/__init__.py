"""Relational persistence: models and session helpers."""

from asset_import.db.models import (
    Admin,
    Animation,
    Avatar,
    AvatarCategory,
    AvatarCategoryType,
    Base,
    Category,
    Gender,
    PartType,
    Resource,
    ResourceStatus,
)
from asset_import.db.session import (
    create_admin,
    create_engine_from_url,
    init_db,
    make_session_factory,
    session_scope,
)

__all__ = [
    "Admin",
    "Animation",
    "Avatar",
    "AvatarCategory",
    "AvatarCategoryType",
    "Base",
    "Category",
    "Gender",
    "PartType",
    "Resource",
    "ResourceStatus",
    "create_admin",
    "create_engine_from_url",
    "init_db",
    "make_session_factory",
    "session_scope",
]
