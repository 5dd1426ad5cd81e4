"""
Resource registrar.

Persists one record per uploaded payload. Registration never uploads: the
descriptor carries the PutResult of an upload that already completed.

A record already stored under the same storage key is returned with
created=False when it was registered from the same source file, so
re-registering an unchanged file is a no-op. A key held by a record of a
different source file (two names that normalize to one key) raises
StorageKeyConflict. A resource id taken by a different storage key gets a
numeric suffix (_1, _2, ...).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from asset_import.categories.resolver import KeyedLocks
from asset_import.db.models import (
    Admin,
    Animation,
    AssetRecordMixin,
    Avatar,
    AvatarCategory,
    Category,
    Gender,
    PartType,
    Resource,
    ResourceStatus,
)
from asset_import.errors import OperatorNotFound, RegistrationError, StorageKeyConflict
from asset_import.storage.gateway import PutResult
from asset_import.utils.logging import get_logger, log_function_call

logger = get_logger(__name__)

MAX_RESOURCE_ID_SUFFIX = 1000


@dataclass(frozen=True)
class SourceRef:
    """Identifies the source file a record was imported from."""

    file_name: str
    category_id: Optional[str] = None
    relative_path: Optional[str] = None

    def describe(self) -> str:
        return self.relative_path or self.file_name


@dataclass
class ResourceDescriptor:
    """Everything needed to register one generic resource."""

    name: str
    file_name: str
    put_result: PutResult
    mime_type: str
    checksum: str
    category_id: str
    admin_id: str
    resource_id: str
    description: Optional[str] = None
    owner_project_id: Optional[str] = None
    relative_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> SourceRef:
        return SourceRef(self.file_name, self.category_id, self.relative_path)


@dataclass
class AnimationDescriptor:
    """Everything needed to register one animation."""

    name: str
    file_name: str
    put_result: PutResult
    mime_type: str
    checksum: str
    admin_id: str
    resource_id: str
    gender: Gender
    description: Optional[str] = None
    animation_type: str = "IDLE"
    version: str = "1.0.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> SourceRef:
        return SourceRef(self.file_name)


@dataclass
class AvatarDescriptor:
    """Everything needed to register one avatar part."""

    name: str
    file_name: str
    put_result: PutResult
    mime_type: str
    checksum: str
    category_id: str
    admin_id: str
    resource_id: str
    gender: Gender
    part_type: PartType
    description: Optional[str] = None
    relative_path: Optional[str] = None
    version: str = "1.0.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> SourceRef:
        return SourceRef(self.file_name, self.category_id, self.relative_path)


Descriptor = Union[ResourceDescriptor, AnimationDescriptor, AvatarDescriptor]

RECORD_MODELS: Dict[type, Type[AssetRecordMixin]] = {
    ResourceDescriptor: Resource,
    AnimationDescriptor: Animation,
    AvatarDescriptor: Avatar,
}

CATEGORY_MODELS: Dict[type, Any] = {
    ResourceDescriptor: Category,
    AvatarDescriptor: AvatarCategory,
}


@dataclass
class Registration:
    record: Any
    created: bool


def resolve_operator(session: Session, admin_id: Optional[str] = None) -> Admin:
    """
    Resolve the operator of record for a run.

    Args:
        session: Open session
        admin_id: Explicit admin id; the earliest created admin when None

    Raises:
        OperatorNotFound: The explicit id does not exist, or no admin exists
    """
    if admin_id:
        admin = session.get(Admin, admin_id)
        if admin is None:
            raise OperatorNotFound(f"Admin not found: {admin_id}")
        return admin

    admin = session.scalars(select(Admin).order_by(Admin.created_at, Admin.id)).first()
    if admin is None:
        raise OperatorNotFound("No admin found in the database")
    return admin


def ensure_same_source(record: Any, source: SourceRef) -> None:
    """
    Check that `record` was registered from `source`.

    The category must match when both sides have one, and the original file
    name and source path must match when both sides recorded them.

    Raises:
        StorageKeyConflict: `record` belongs to a different source file
    """
    extra = record.extra or {}
    stored_category = getattr(record, "category_id", None)
    stored_path = extra.get("sourcePath")
    stored_name = extra.get("originalFileName")

    same = True
    if source.category_id is not None and stored_category is not None:
        same = same and stored_category == source.category_id
    if source.relative_path and stored_path:
        same = same and stored_path == source.relative_path
    if stored_name:
        same = same and stored_name == source.file_name

    if not same:
        raise StorageKeyConflict(
            record.storage_key,
            source=source.describe(),
            owner=stored_path or stored_name or record.resource_id,
        )


class ResourceRegistrar:
    """
    Persists Resource, Animation and Avatar records.

    Args:
        session_factory: sessionmaker; each registration is one transaction
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory
        self._locks = KeyedLocks()

    def check_key(self, model: Type[AssetRecordMixin], key: str, source: SourceRef) -> bool:
        """
        Check, before uploading, whether `source` may use storage key `key`.

        Returns:
            True if a record of the same source already holds the key,
            False if no record holds it

        Raises:
            StorageKeyConflict: A record of a different source holds the key
        """
        with self.session_factory() as session:
            existing = self._find_by_key(session, model, key)
        if existing is None:
            return False
        ensure_same_source(existing, source)
        return True

    @log_function_call
    def register(self, descriptor: Descriptor) -> Registration:
        """
        Persist the record described by `descriptor`.

        Returns:
            Registration with the stored record and whether it was created

        Raises:
            StorageKeyConflict: The storage key is registered to a different
                source file
            RegistrationError: Persisting failed; the uploaded object at
                descriptor.put_result.key is left without a record
        """
        model = RECORD_MODELS[type(descriptor)]
        key = descriptor.put_result.key

        # Serialize on the base resource id so suffix selection cannot race
        with self._locks.hold((model.__tablename__, descriptor.resource_id)):
            try:
                return self._register(model, descriptor)
            except (RegistrationError, StorageKeyConflict):
                raise
            except SQLAlchemyError as e:
                raise RegistrationError(
                    f"Failed to register {descriptor.file_name}: {e}", storage_key=key
                ) from e

    def _register(self, model: Any, descriptor: Descriptor) -> Registration:
        key = descriptor.put_result.key

        with self.session_factory() as session:
            existing = self._find_by_key(session, model, key)
            if existing is not None:
                ensure_same_source(existing, descriptor.source)
                logger.info(
                    f"Record already registered for {key}: {existing.resource_id}"
                )
                return Registration(existing, created=False)

            category_model = CATEGORY_MODELS.get(type(descriptor))
            if category_model is not None:
                if session.get(category_model, descriptor.category_id) is None:
                    raise RegistrationError(
                        f"Invalid category id {descriptor.category_id} for "
                        f"{descriptor.file_name}",
                        storage_key=key,
                    )

            record = model(**self._columns(descriptor))
            record.resource_id = self._free_resource_id(
                session, model, descriptor.resource_id, key
            )
            session.add(record)

            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                existing = self._find_by_key(session, model, key)
                if existing is not None:
                    ensure_same_source(existing, descriptor.source)
                    return Registration(existing, created=False)
                raise RegistrationError(
                    f"Constraint violation registering {descriptor.file_name}: {e.orig}",
                    storage_key=key,
                ) from e

            logger.info(
                f"{model.__name__} registered: {record.resource_id} -> {key}",
                extra={
                    "resource_id": record.resource_id,
                    "storage_key": key,
                    "uploaded_by": descriptor.admin_id,
                    "file_size": descriptor.put_result.size,
                },
            )
            return Registration(record, created=True)

    @staticmethod
    def _columns(descriptor: Descriptor) -> Dict[str, Any]:
        put_result = descriptor.put_result
        metadata: Dict[str, Any] = {
            "originalFileName": descriptor.file_name,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
        }
        metadata.update(descriptor.metadata)

        columns: Dict[str, Any] = {
            "name": descriptor.name,
            "description": descriptor.description,
            "storage_url": put_result.url,
            "storage_key": put_result.key,
            "file_size": put_result.size,
            "file_type": PurePosixPath(descriptor.file_name).suffix.lower(),
            "mime_type": descriptor.mime_type,
            "checksum": descriptor.checksum,
            "status": ResourceStatus.ACTIVE,
            "uploaded_by_admin_id": descriptor.admin_id,
        }

        if isinstance(descriptor, AnimationDescriptor):
            columns.update(
                gender=descriptor.gender,
                animation_type=descriptor.animation_type,
                version=descriptor.version,
            )
        elif isinstance(descriptor, AvatarDescriptor):
            if descriptor.relative_path:
                metadata["sourcePath"] = descriptor.relative_path
            columns.update(
                gender=descriptor.gender,
                part_type=descriptor.part_type,
                category_id=descriptor.category_id,
                version=descriptor.version,
            )
        else:
            if descriptor.relative_path:
                metadata["sourcePath"] = descriptor.relative_path
            columns.update(
                category_id=descriptor.category_id,
                owner_project_id=descriptor.owner_project_id,
            )

        columns["extra"] = metadata
        return columns

    @staticmethod
    def _find_by_key(session: Session, model: Any, key: str) -> Optional[Any]:
        return session.scalars(select(model).where(model.storage_key == key)).first()

    @staticmethod
    def _free_resource_id(session: Session, model: Any, base: str, key: str) -> str:
        candidate = base
        for counter in range(1, MAX_RESOURCE_ID_SUFFIX + 1):
            taken = session.scalars(
                select(model.id).where(model.resource_id == candidate)
            ).first()
            if taken is None:
                return candidate
            candidate = f"{base}_{counter}"
        raise RegistrationError(f"No free resource id for {base}", storage_key=key)
