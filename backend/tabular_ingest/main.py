"""FastAPI application bootstrap and service wiring."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabular_ingest import __version__
from tabular_ingest.api.routers import datasets, health, imports, uploads
from tabular_ingest.core.config import Settings, get_settings
from tabular_ingest.db.session import build_engine, create_session_factory, init_database
from tabular_ingest.services.batch_importer import BatchImporter
from tabular_ingest.services.import_locks import build_import_locks
from tabular_ingest.services.registry import DatasetRegistry

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Instantiate the FastAPI app, its routers, and the services they share.

    The engine, registry, importer and import locks are built when the app
    starts and disposed of at shutdown; routers reach them through
    ``app.state``.
    """
    settings = settings or get_settings()
    _configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = build_engine(settings.database_url)
        init_database(engine)
        registry = DatasetRegistry(create_session_factory(engine))
        app.state.engine = engine
        app.state.registry = registry
        app.state.importer = BatchImporter(
            engine,
            registry,
            default_batch_size=settings.import_batch_size,
            max_json_element_chars=settings.max_json_element_bytes,
        )
        app.state.import_locks = build_import_locks(settings)
        logger.info(f"[{settings.app_name}] uploads dir: {settings.uploads_dir}")
        try:
            yield
        finally:
            engine.dispose()
            logger.info("Database connections closed")

    app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(uploads.router, tags=["uploads"])
    app.include_router(datasets.router, tags=["datasets"])
    app.include_router(imports.router, tags=["imports"])

    return app
