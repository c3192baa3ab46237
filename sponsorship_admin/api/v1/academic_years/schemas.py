from datetime import date, datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class AcademicYearCreate(BaseModel):
    """Create academic year. year_name must be unique."""

    year_name: str = Field(..., min_length=1, max_length=50, description="e.g. 2025")
    start_date: date = Field(..., description="Academic year start date")
    end_date: date = Field(..., description="Academic year end date (must be after start_date)")
    set_as_current: bool = Field(False, description="Make this the current academic year once created")


class AcademicYearUpdate(BaseModel):
    """Renaming a year also renames it on every record scoped to it."""

    year_name: Optional[str] = Field(None, min_length=1, max_length=50)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AcademicYearResponse(BaseModel):
    id: UUID
    year_name: str
    start_date: date
    end_date: date
    is_current: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CurrentAcademicYearResponse(BaseModel):
    academic_year: Optional[AcademicYearResponse] = None
    is_fallback: bool = Field(
        False,
        description="True when no year is flagged current and the most recent year is used instead",
    )


class CopyYearRequest(BaseModel):
    """Copy student records and/or exam definitions from one year into another (existing or new)."""

    source_year_id: UUID
    destination_year_id: Optional[UUID] = None
    new_year_name: Optional[str] = Field(None, min_length=1, max_length=50)
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    copy_student_data: bool = True
    copy_exam_templates: bool = True
    copy_sponsorship: bool = Field(True, description="Keep sponsor assignments on copied student records")
    grade_promotion: Dict[str, str] = Field(
        default_factory=dict,
        description="current_grade mapping applied to copied student records, e.g. {'Grade 4': 'Grade 5'}",
    )

    @model_validator(mode="after")
    def validate_destination(self) -> "CopyYearRequest":
        if self.destination_year_id is None:
            if not (self.new_year_name and self.new_start_date and self.new_end_date):
                raise ValueError("Provide destination_year_id or new_year_name, new_start_date and new_end_date")
        return self


class CopyYearResponse(BaseModel):
    destination: AcademicYearResponse
    students_copied: int = 0
    students_skipped: int = Field(0, description="Students that already had a record in the destination year")
    exams_copied: int = 0
    exams_skipped: int = 0


class AcademicYearStatistics(BaseModel):
    year_name: str
    is_current: bool
    student_count: int
    exam_count: int
    score_count: int
    average_percentage: Optional[float] = None
    student_change_percent: float = 0
    exam_change_percent: float = 0
