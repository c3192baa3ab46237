import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text, Uuid

from sponsorship_admin.core.models.versioned import VersionedRecordMixin, versioned_table_args
from sponsorship_admin.db.session import Base


class Exam(Base):
    __tablename__ = "exams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    term = Column(String(50), nullable=False)
    academic_year = Column(String(50), nullable=False, index=True)  # AcademicYear.year_name
    exam_date = Column(Date, nullable=True)
    max_score = Column(Float, nullable=False, default=100)
    passing_score = Column(Float, nullable=False, default=50)
    description = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudentExamScore(VersionedRecordMixin, Base):
    """
    Score of one student in one exam. The (student, exam) pair is the logical entity.
    The authoritative row for an exam is the one recorded in the exam's academic year.
    """

    __tablename__ = "student_exam_scores"
    __table_args__ = versioned_table_args("student_exam_scores")
    __versioned_fields__ = ("student_id", "exam_id", "score", "did_not_sit", "created_by")

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)  # Student.entity_id
    exam_id = Column(Uuid, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Float, nullable=True)
    did_not_sit = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
