import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, Uuid

from sponsorship_admin.db.session import Base


class Sponsor(Base):
    """Sponsor of zero or more students. Students point here through Student.sponsor_id."""

    __tablename__ = "sponsors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    slug = Column(String(255), nullable=True, unique=True, index=True)
    email = Column(String(255), nullable=False)
    email2 = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    country = Column(String(100), nullable=True)
    occupation = Column(String(255), nullable=True)
    additional_info = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    notes = Column(Text, nullable=True)
    profile_image_url = Column(Text, nullable=True)
    # Which of email / email2 receives student-update communications
    primary_email_for_updates = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SponsorRelative(Base):
    __tablename__ = "sponsor_relatives"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sponsor_id = Column(Uuid, ForeignKey("sponsors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    relationship = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=True)
    photo_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SponsorTimelineEvent(Base):
    """Append-only narrative log for a sponsor (assignments, removals, notes)."""

    __tablename__ = "sponsor_timeline_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sponsor_id = Column(Uuid, ForeignKey("sponsors.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, nullable=True)  # Student.entity_id when the event concerns a student
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=False, default="general")
    date = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

