import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, String, Uuid, text

from sponsorship_admin.db.session import Base


class AcademicYear(Base):
    """
    Organizational reporting period. At most one row can be is_current = true;
    the partial unique index below enforces it in the store.
    Years are only removed by a factory reset.
    """

    __tablename__ = "academic_years"
    __table_args__ = (
        Index(
            "uq_academic_years_single_current",
            "is_current",
            unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    year_name = Column(String(50), nullable=False, unique=True)  # e.g. "2024"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_current = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
