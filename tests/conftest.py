"""Shared fixtures: in-memory database, operator, in-memory content store."""

from pathlib import Path
from typing import Dict, Optional

import pytest

from asset_import.db import (
    create_admin,
    create_engine_from_url,
    init_db,
    make_session_factory,
    session_scope,
)
from asset_import.storage import InMemoryContentStore
from asset_import.utils.metrics import ImportMetrics


@pytest.fixture
def metrics():
    return ImportMetrics(enabled=False)


@pytest.fixture
def engine():
    engine = create_engine_from_url("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def admin_id(session_factory) -> str:
    with session_scope(session_factory) as session:
        admin = create_admin(session, "Importer", "importer@example.com")
        return admin.id


@pytest.fixture
def store(metrics):
    return InMemoryContentStore(metrics=metrics)


@pytest.fixture
def make_tree(tmp_path):
    """Return a builder creating files (relative path -> bytes) under a root."""

    def build(files: Dict[str, bytes], root: Optional[Path] = None) -> Path:
        root = root or tmp_path / "source"
        root.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root

    return build
