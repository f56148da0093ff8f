"""
SQLAlchemy models for the record store.

Clients, projects and tasks share one table: the orchestrator treats each
record as an opaque field map with a version counter.
"""

from datetime import datetime
from sqlalchemy import (
    String,
    Integer,
    DateTime,
    JSON,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class RecordDB(Base):
    """A client, project or task record."""
    __tablename__ = "bulk_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_type: Mapped[str] = mapped_column(String(20), nullable=False)
    record_id: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("record_type", "record_id", name="uq_bulk_records_type_id"),
        Index("idx_bulk_records_type", "record_type"),
    )
