import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Index, String, Text, Uuid, text

from sponsorship_admin.core.models.versioned import VersionedRecordMixin, versioned_table_args
from sponsorship_admin.db.session import Base


class Student(VersionedRecordMixin, Base):
    """
    One academic-year snapshot of a student. The student's public id is entity_id;
    id identifies the stored row only. Related tables reference entity_id.
    """

    __tablename__ = "students"
    __table_args__ = versioned_table_args(
        "students",
        Index(
            "uq_students_current_admission_number",
            "admission_number",
            unique=True,
            postgresql_where=text("is_current_record"),
            sqlite_where=text("is_current_record"),
        ),
    )
    __versioned_fields__ = (
        "admission_number",
        "name",
        "slug",
        "dob",
        "gender",
        "location",
        "description",
        "current_grade",
        "school_level",
        "cbc_category",
        "accommodation_status",
        "health_status",
        "height_cm",
        "weight_kg",
        "admission_date",
        "status",
        "profile_image_url",
        "sponsor_id",
        "sponsored_since",
        "created_by",
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    admission_number = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True, index=True)
    dob = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)
    location = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    current_grade = Column(String(50), nullable=True)
    school_level = Column(String(50), nullable=True)
    cbc_category = Column(String(50), nullable=True)
    accommodation_status = Column(String(50), nullable=True)
    health_status = Column(String(100), nullable=True)
    height_cm = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    admission_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    profile_image_url = Column(Text, nullable=True)
    # Weak reference: removing the sponsor nulls this, it never deletes the student
    sponsor_id = Column(Uuid, ForeignKey("sponsors.id", ondelete="SET NULL"), nullable=True, index=True)
    sponsored_since = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudentRelative(Base):
    """Family member of a student. Not year-scoped."""

    __tablename__ = "student_relatives"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)  # Student.entity_id
    name = Column(String(255), nullable=False)
    relationship = Column(String(100), nullable=False)
    phone_number = Column(String(50), nullable=True)
    photo_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
