"""
Engine and session helpers.

Example usage:
    >>> engine = create_engine_from_url("sqlite:///asset_import.db")
    >>> init_db(engine)
    >>> Session = make_session_factory(engine)
    >>> with session_scope(Session) as session:
    ...     create_admin(session, "Importer", "importer@example.com")
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from asset_import.db.models import Admin, Base
from asset_import.utils.logging import get_logger

logger = get_logger(__name__)


def create_engine_from_url(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine, sharing one connection for in-memory SQLite.

    File-backed SQLite gets check_same_thread disabled so import workers can
    open their own sessions.
    """
    options: Dict[str, Any] = {"echo": echo, "future": True}

    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool

    logger.debug(f"Creating engine for {database_url.split('@')[-1]}")
    return create_engine(database_url, **options)


def init_db(engine: Engine) -> None:
    """Create missing tables. Schema migrations are handled elsewhere."""
    Base.metadata.create_all(engine)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """Yield a session that commits on success and rolls back on error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_admin(
    session: Session, name: str, email: str, admin_id: Optional[str] = None
) -> Admin:
    """Create an operator, or return the existing one with the same email."""
    existing = session.scalars(select(Admin).where(Admin.email == email)).first()
    if existing is not None:
        return existing

    admin = Admin(name=name, email=email)
    if admin_id:
        admin.id = admin_id
    session.add(admin)
    session.flush()
    logger.info(f"Created admin {admin.email} ({admin.id})")
    return admin
