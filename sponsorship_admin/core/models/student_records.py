"""
Year-scoped narrative records attached to a student: timeline events, letters and photos.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid

from sponsorship_admin.core.models.versioned import VersionedRecordMixin, versioned_table_args
from sponsorship_admin.db.session import Base


class TimelineEvent(VersionedRecordMixin, Base):
    __tablename__ = "timeline_events"
    __table_args__ = versioned_table_args("timeline_events")
    __versioned_fields__ = ("student_id", "title", "description", "type", "date", "created_by")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)  # Student.entity_id
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Free-text tag; only drives icon/colour selection in clients
    type = Column(String(50), nullable=False, default="general")
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudentLetter(VersionedRecordMixin, Base):
    __tablename__ = "student_letters"
    __table_args__ = versioned_table_args("student_letters")
    __versioned_fields__ = ("student_id", "content", "file_url", "date", "created_by")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    content = Column(Text, nullable=True)
    file_url = Column(Text, nullable=True)  # Scanned letter in external storage
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudentPhoto(VersionedRecordMixin, Base):
    __tablename__ = "student_photos"
    __table_args__ = versioned_table_args("student_photos")
    __versioned_fields__ = ("student_id", "url", "caption", "date")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    url = Column(Text, nullable=False)
    caption = Column(String(255), nullable=True)
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
