"""Database models package."""
from tabular_ingest.db.models.dataset import Dataset

__all__ = ["Dataset"]
