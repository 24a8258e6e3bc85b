"""Registry row describing one uploaded tabular source."""

import uuid

from sqlalchemy import JSON, Column, Integer, String, Text
from sqlalchemy.types import DateTime

from tabular_ingest.db.base import Base


class Dataset(Base):
    __tablename__ = "datasets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    source_path = Column(Text, nullable=False)
    source_format = Column(String(32), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    # Census fields stay NULL until recorded once
    row_count = Column(Integer)
    column_count = Column(Integer)
    columns = Column(JSON)
    preview = Column(JSON, nullable=False, default=list)
    scan_error = Column(Text)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, index=True)
