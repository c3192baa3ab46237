from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class StudentFields(BaseModel):
    dob: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    current_grade: Optional[str] = Field(None, max_length=50)
    school_level: Optional[str] = Field(None, max_length=50)
    cbc_category: Optional[str] = Field(None, max_length=50)
    accommodation_status: Optional[str] = Field(None, max_length=50)
    health_status: Optional[str] = Field(None, max_length=100)
    height_cm: Optional[float] = Field(None, ge=0)
    weight_kg: Optional[float] = Field(None, ge=0)
    admission_date: Optional[date] = None
    profile_image_url: Optional[str] = None


class StudentCreate(StudentFields):
    admission_number: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    status: str = Field("active", pattern="^(active|inactive)$")
    sponsor_id: Optional[UUID] = None
    academic_year: Optional[str] = Field(None, description="Year the first record belongs to; defaults to the current year")


class StudentUpdate(StudentFields):
    """Only fields that are sent are written. academic_year selects which year's record is edited."""

    admission_number: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[str] = Field(None, pattern="^(active|inactive)$")
    academic_year: Optional[str] = Field(None, description="Defaults to the current academic year")


class StudentResponse(StudentFields):
    id: UUID = Field(..., description="Student id (stable across academic years)")
    record_id: UUID = Field(..., description="Id of this academic-year record")
    admission_number: str
    name: str
    slug: Optional[str] = None
    status: str
    sponsor_id: Optional[UUID] = None
    sponsored_since: Optional[datetime] = None
    academic_year_recorded: str
    is_current_record: bool
    record_date: datetime
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    warning: Optional[str] = Field(None, description="Set when the record belongs to another year than the one viewed")


class StudentImportRowError(BaseModel):
    row: int
    admission_number: Optional[str] = None
    reason: str


class StudentImportResponse(BaseModel):
    created: int
    skipped: List[StudentImportRowError] = Field(default_factory=list, description="Admission numbers that already exist")
    failed: List[StudentImportRowError] = Field(default_factory=list)


# Relatives (not year-scoped)


class RelativeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    relationship: str = Field(..., min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=50)
    photo_url: Optional[str] = None


class RelativeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    relationship: Optional[str] = Field(None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=50)
    photo_url: Optional[str] = None


class RelativeResponse(BaseModel):
    id: UUID
    name: str
    relationship: str
    phone_number: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# Year-scoped records


class VersionedRecordResponse(BaseModel):
    id: UUID = Field(..., description="Record id (stable across academic years)")
    student_id: UUID
    academic_year_recorded: str
    is_current_record: bool
    record_date: datetime
    created_at: datetime
    updated_at: datetime
    warning: Optional[str] = None


class TimelineEventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: str = Field("general", max_length=50, description="Free-text tag, e.g. academic, health, achievement")
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class TimelineEventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    type: Optional[str] = Field(None, max_length=50)
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class TimelineEventResponse(VersionedRecordResponse):
    title: str
    description: Optional[str] = None
    type: str
    date: datetime
    created_by: Optional[UUID] = None


class LetterCreate(BaseModel):
    content: Optional[str] = None
    file_url: Optional[str] = Field(None, description="Scanned letter in external storage")
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class LetterUpdate(BaseModel):
    content: Optional[str] = None
    file_url: Optional[str] = None
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class LetterResponse(VersionedRecordResponse):
    content: Optional[str] = None
    file_url: Optional[str] = None
    date: datetime
    created_by: Optional[UUID] = None


class PhotoCreate(BaseModel):
    url: str = Field(..., min_length=1)
    caption: Optional[str] = Field(None, max_length=255)
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class PhotoUpdate(BaseModel):
    url: Optional[str] = Field(None, min_length=1)
    caption: Optional[str] = Field(None, max_length=255)
    date: Optional[datetime] = None
    academic_year: Optional[str] = None


class PhotoResponse(VersionedRecordResponse):
    url: str
    caption: Optional[str] = None
    date: datetime
