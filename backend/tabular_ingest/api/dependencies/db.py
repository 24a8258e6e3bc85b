"""Request-scoped access to the services built at application start-up."""

from fastapi import Request

from tabular_ingest.core.config import Settings
from tabular_ingest.services.batch_importer import BatchImporter
from tabular_ingest.services.import_locks import ImportLocks
from tabular_ingest.services.registry import DatasetRegistry


def get_registry(request: Request) -> DatasetRegistry:
    """FastAPI dependency returning the application's dataset registry."""
    return request.app.state.registry


def get_importer(request: Request) -> BatchImporter:
    return request.app.state.importer


def get_import_locks(request: Request) -> ImportLocks:
    return request.app.state.import_locks


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    return request.app.state.settings
