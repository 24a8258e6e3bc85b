"""Engine and session factory configuration."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from tabular_ingest.db.base import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """Create an engine for the metadata store and imported tables.

    SQLite engines are shared across FastAPI's worker threads, so the
    same-thread check is disabled. Server databases get the pooling
    settings used for long-running imports.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            # SQLite will not create missing parent directories itself
            Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
        )

    # pool_pre_ping: test connections before using (handles stale connections)
    # pool_recycle: recycle connections after 30 minutes (prevents timeout)
    return create_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=5,
        max_overflow=10,
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_database(engine: Engine) -> None:
    """Create the metadata tables if they do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info(f"Metadata store ready at {engine.url.render_as_string(hide_password=True)}")


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a transactional session: commit on success, roll back on error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
