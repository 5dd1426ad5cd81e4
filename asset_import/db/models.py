"""
SQLAlchemy models for categories, imported assets and operators.

Category rows mirror the source directory tree; (name, parent_id) is unique
among siblings. Resource, Animation and Avatar rows each describe one
uploaded payload and are identified by their storage key and resource id.
Avatar parts have their own two-level tree (gender, then part type).
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ResourceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNISEX = "UNISEX"


class PartType(str, enum.Enum):
    BODY = "BODY"
    HAIR = "HAIR"
    TOP = "TOP"
    BOTTOM = "BOTTOM"
    SHOES = "SHOES"
    ACCESSORY = "ACCESSORY"
    FULLSET = "FULLSET"


class AvatarCategoryType(str, enum.Enum):
    GENDER = "gender"
    PART_TYPE = "part_type"


class Admin(Base):
    """Operator of record for imported assets."""

    __tablename__ = "admins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(320), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<Admin {self.email}>"


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("name", "parent_id", name="uq_category_name_parent"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    path: Mapped[str] = mapped_column(String(1024), index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("categories.id"), nullable=True, index=True
    )
    level: Mapped[int] = mapped_column(Integer, default=0)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    parent: Mapped[Optional["Category"]] = relationship(
        remote_side="Category.id", back_populates="children"
    )
    children: Mapped[List["Category"]] = relationship(back_populates="parent")

    def __repr__(self) -> str:
        return f"<Category {self.path} level={self.level}>"


class AssetRecordMixin:
    """Columns shared by every record describing one stored payload."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    resource_id: Mapped[str] = mapped_column(String(512), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    storage_url: Mapped[str] = mapped_column(String(2048))
    storage_key: Mapped[str] = mapped_column(String(1024), unique=True)
    file_size: Mapped[int] = mapped_column(BigInteger)
    file_type: Mapped[str] = mapped_column(String(32))
    mime_type: Mapped[str] = mapped_column(String(128))
    checksum: Mapped[str] = mapped_column(String(32))
    status: Mapped[ResourceStatus] = mapped_column(
        Enum(ResourceStatus, native_enum=False), default=ResourceStatus.ACTIVE
    )
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    uploaded_by_admin_id: Mapped[str] = mapped_column(ForeignKey("admins.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Resource(AssetRecordMixin, Base):
    """Generic asset filed under a category."""

    __tablename__ = "resources"

    category_id: Mapped[str] = mapped_column(ForeignKey("categories.id"), index=True)
    owner_project_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    category: Mapped[Category] = relationship()
    uploaded_by: Mapped[Admin] = relationship()

    def __repr__(self) -> str:
        return f"<Resource {self.resource_id}>"


class Animation(AssetRecordMixin, Base):
    """Animation asset, classified by gender instead of category."""

    __tablename__ = "animations"

    gender: Mapped[Gender] = mapped_column(Enum(Gender, native_enum=False))
    animation_type: Mapped[str] = mapped_column(String(32), default="IDLE")
    version: Mapped[str] = mapped_column(String(32), default="1.0.0")

    uploaded_by: Mapped[Admin] = relationship()

    def __repr__(self) -> str:
        return f"<Animation {self.resource_id} {self.gender.value}>"


class AvatarCategory(Base):
    """
    Node of the avatar parts tree: a gender at level 0, a part type below it.

    Kept apart from Category so avatar parts never show up in the item tree.
    """

    __tablename__ = "avatar_categories"
    __table_args__ = (
        UniqueConstraint("name", "parent_id", name="uq_avatar_category_name_parent"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100))
    category_type: Mapped[AvatarCategoryType] = mapped_column(
        Enum(AvatarCategoryType, native_enum=False)
    )
    path: Mapped[str] = mapped_column(String(500), index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("avatar_categories.id"), nullable=True, index=True
    )
    level: Mapped[int] = mapped_column(Integer, default=0)
    extra: Mapped[Dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    parent: Mapped[Optional["AvatarCategory"]] = relationship(remote_side="AvatarCategory.id")

    def __repr__(self) -> str:
        return f"<AvatarCategory {self.path} {self.category_type.value}>"


class Avatar(AssetRecordMixin, Base):
    """Avatar part filed under a gender/part-type category."""

    __tablename__ = "avatars"

    gender: Mapped[Gender] = mapped_column(Enum(Gender, native_enum=False))
    part_type: Mapped[PartType] = mapped_column(Enum(PartType, native_enum=False))
    category_id: Mapped[str] = mapped_column(ForeignKey("avatar_categories.id"), index=True)
    version: Mapped[str] = mapped_column(String(32), default="1.0.0")

    category: Mapped[AvatarCategory] = relationship()
    uploaded_by: Mapped[Admin] = relationship()

    def __repr__(self) -> str:
        return f"<Avatar {self.resource_id} {self.part_type.value}>"
