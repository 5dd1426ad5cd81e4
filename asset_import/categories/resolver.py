"""
Category resolver.

Maps directory segments onto Category rows: an existing (name, parent_id)
row is returned unchanged, a missing one is created. Every lookup-then-create
for one (name, parent_id) pair runs under a lock keyed on that pair, so two
import workers can never both decide to create the same category. The
database unique constraint stays in place for writers outside this process:
an IntegrityError on insert re-fetches and returns the winner's row.

Example usage:
    >>> resolver = CategoryResolver(Session)
    >>> furniture = resolver.ensure("furniture", None, 0, "furniture")
    >>> chairs = resolver.ensure("chairs", furniture.id, 1, "furniture/chairs")
    >>> resolver.ensure_path(["furniture", "chairs"]).id == chairs.id
    True
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterator, List, Optional, Type, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from asset_import.db.models import AvatarCategory, Category
from asset_import.utils.logging import get_logger, log_function_call
from asset_import.utils.metrics import ImportMetrics, get_metrics

logger = get_logger(__name__)

CategoryRow = Union[Category, AvatarCategory]


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """
    One lock per key, created on first use.

    An entry is evicted as soon as no thread holds or waits on it, so the
    table only ever contains keys with work in progress.

    Example:
        >>> locks = KeyedLocks()
        >>> with locks.hold(("chairs", parent_id)):
        ...     create_if_missing()
    """

    def __init__(self) -> None:
        self._entries: Dict[Hashable, _LockEntry] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _LockEntry()
                self._entries[key] = entry
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


@dataclass
class ResolverCounts:
    created: int = 0
    existing: int = 0


class CategoryResolver:
    """
    Find-or-create for category rows.

    Args:
        session_factory: sessionmaker; each ensure() runs in its own
            short transaction so created rows are visible to every worker
        metrics: Metrics sink (global instance if None)
        model: Category table to resolve against (Category for the item
            tree, AvatarCategory for the avatar parts tree)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        metrics: Optional[ImportMetrics] = None,
        model: Type[CategoryRow] = Category,
    ) -> None:
        self.session_factory = session_factory
        self.metrics = metrics if metrics is not None else get_metrics()
        self.model = model
        self.counts = ResolverCounts()
        self._locks = KeyedLocks()
        self._counts_lock = threading.Lock()

    @log_function_call
    def ensure(
        self,
        name: str,
        parent_id: Optional[str],
        level: int,
        full_path: str,
        **attributes: Any,
    ) -> CategoryRow:
        """
        Return the category (name, parent_id), creating it if missing.

        An existing row is returned as stored: its path and metadata are
        not rewritten even if `full_path` differs.

        Args:
            name: Directory segment name
            parent_id: Parent category id (None for a root category)
            level: Depth of the category (root = 0)
            full_path: Slash-joined ancestry including `name`
            **attributes: Extra columns set only when the row is created

        Returns:
            Detached category instance
        """
        if not name:
            raise ValueError("Category name cannot be empty")

        with self._locks.hold((name, parent_id)):
            with self.session_factory() as session:
                category = self._find(session, name, parent_id)
                if category is not None:
                    self._count(created=False)
                    logger.debug(f"Found existing category: {category.path} ({category.id})")
                    return category

                category = self.model(
                    name=name,
                    parent_id=parent_id,
                    level=level,
                    path=full_path,
                    extra={},
                    **attributes,
                )
                session.add(category)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    winner = self._find(session, name, parent_id)
                    if winner is None:
                        raise
                    logger.info(
                        f"Category {full_path} was created concurrently, using {winner.id}"
                    )
                    self._count(created=False)
                    return winner

                logger.info(f"Created category: {full_path} (level {level}, id {category.id})")
                self._count(created=True)
                return category

    def ensure_path(self, segments: List[str]) -> CategoryRow:
        """
        Resolve a whole chain of segments and return the deepest category.

        Empty segments are skipped.

        Raises:
            ValueError: If no non-empty segment is given
        """
        parent: Optional[CategoryRow] = None
        path_parts: List[str] = []

        for name in segments:
            if not name:
                continue
            path_parts.append(name)
            parent = self.ensure(
                name,
                parent.id if parent is not None else None,
                len(path_parts) - 1,
                "/".join(path_parts),
            )

        if parent is None:
            raise ValueError("At least one category segment is required")
        return parent

    def _find(
        self, session: Session, name: str, parent_id: Optional[str]
    ) -> Optional[CategoryRow]:
        model = self.model
        if parent_id is None:
            condition = model.parent_id.is_(None)
        else:
            condition = model.parent_id == parent_id
        return session.scalars(select(model).where(model.name == name, condition)).first()

    def _count(self, created: bool) -> None:
        with self._counts_lock:
            if created:
                self.counts.created += 1
            else:
                self.counts.existing += 1
        self.metrics.record_category(created)
