"""
Per-academic-year snapshots of a logical entity.

A logical entity (one student, one exam score, one letter ...) is identified by
entity_id and may have one stored row per academic year. Exactly one of those
rows has is_current_record = true; the others are history.
"""

import uuid
from datetime import datetime
from typing import Tuple

from sqlalchemy import Boolean, Column, DateTime, Index, String, UniqueConstraint, Uuid, text


class VersionedRecordMixin:
    entity_id = Column(Uuid, nullable=False, index=True, default=uuid.uuid4)
    academic_year_recorded = Column(String(50), nullable=False, index=True)
    is_current_record = Column(Boolean, nullable=False, default=True)
    record_date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Columns carried forward when a snapshot for a new year is created
    __versioned_fields__: Tuple[str, ...] = ()


def versioned_table_args(tablename: str, *extra) -> tuple:
    """(entity_id, academic_year_recorded) is unique, and only one row per entity is current."""
    return (
        UniqueConstraint("entity_id", "academic_year_recorded", name=f"uq_{tablename}_entity_year"),
        Index(
            f"uq_{tablename}_single_current",
            "entity_id",
            unique=True,
            postgresql_where=text("is_current_record"),
            sqlite_where=text("is_current_record"),
        ),
        *extra,
    )
