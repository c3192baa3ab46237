from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from sponsorship_admin.api.v1.students.schemas import StudentResponse
from sponsorship_admin.core.enums import SponsorRemovalReason


class SponsorFields(BaseModel):
    email2: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    country: Optional[str] = Field(None, max_length=100)
    occupation: Optional[str] = Field(None, max_length=255)
    additional_info: Optional[str] = None
    start_date: Optional[date] = None
    notes: Optional[str] = None
    profile_image_url: Optional[str] = None
    primary_email_for_updates: Optional[EmailStr] = Field(None, description="Must be email or email2")


class SponsorCreate(SponsorFields):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    status: str = Field("active", pattern="^(active|inactive)$")


class SponsorUpdate(SponsorFields):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    status: Optional[str] = Field(None, pattern="^(active|inactive)$")


class SponsorResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: str
    slug: Optional[str] = None
    email: str
    email2: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    occupation: Optional[str] = None
    additional_info: Optional[str] = None
    start_date: Optional[date] = None
    status: str
    notes: Optional[str] = None
    profile_image_url: Optional[str] = None
    primary_email_for_updates: Optional[str] = None
    student_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SponsorDetailResponse(SponsorResponse):
    students: List[StudentResponse] = Field(default_factory=list)


class BulkSponsorIds(BaseModel):
    sponsor_ids: List[UUID] = Field(..., min_length=1)


class BulkStatusUpdate(BulkSponsorIds):
    status: str = Field(..., pattern="^(active|inactive)$")


class BulkResult(BaseModel):
    affected: int


class AssignStudentsRequest(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)


class AssignStudentsResponse(BaseModel):
    assigned: List[StudentResponse]
    skipped: List[UUID] = Field(default_factory=list, description="Students that already have a sponsor")


class RemoveStudentRequest(BaseModel):
    reason: SponsorRemovalReason
    notes: Optional[str] = None


class UpdateEmailRequest(BaseModel):
    primary_email_for_updates: EmailStr


class UpdateEmailResponse(BaseModel):
    sponsor_id: UUID
    email: str = Field(..., description="Address that receives student updates")
    is_primary_email: bool


class SponsorTimelineEventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: str = Field("general", max_length=50)
    date: Optional[datetime] = None
    student_id: Optional[UUID] = None


class SponsorTimelineEventResponse(BaseModel):
    id: UUID
    sponsor_id: UUID
    student_id: Optional[UUID] = None
    title: str
    description: Optional[str] = None
    type: str
    date: datetime
    created_at: datetime

    class Config:
        from_attributes = True
