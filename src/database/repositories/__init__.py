"""
Repository classes for record store operations.
"""

from .records import (
    RecordRepository,
    InMemoryRecordRepository,
    SqlRecordRepository,
    get_record_repository,
    set_record_repository,
)

__all__ = [
    "RecordRepository",
    "InMemoryRecordRepository",
    "SqlRecordRepository",
    "get_record_repository",
    "set_record_repository",
]
