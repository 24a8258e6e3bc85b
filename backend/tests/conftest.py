from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from tabular_ingest.core.config import Settings
from tabular_ingest.db.session import build_engine, create_session_factory, init_database
from tabular_ingest.main import create_app
from tabular_ingest.services.batch_importer import BatchImporter
from tabular_ingest.services.registry import DatasetRegistry


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'workbench.sqlite'}",
        uploads_dir=str(tmp_path / "uploads"),
        preview_limit=5,
        import_batch_size=200,
        import_lock_backend="local",
    )


@pytest.fixture
def engine(settings: Settings) -> Iterator[Engine]:
    engine = build_engine(settings.database_url)
    init_database(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def registry(engine: Engine) -> DatasetRegistry:
    return DatasetRegistry(create_session_factory(engine))


@pytest.fixture
def importer(engine: Engine, registry: DatasetRegistry) -> BatchImporter:
    return BatchImporter(engine, registry, default_batch_size=200)


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings)) as test_client:
        yield test_client
