from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ExamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    term: str = Field(..., min_length=1, max_length=50, description="e.g. Term 1")
    academic_year: Optional[str] = Field(None, description="Defaults to the current academic year")
    exam_date: Optional[date] = None
    max_score: float = Field(100, ge=1)
    passing_score: float = Field(50, ge=0)
    description: Optional[str] = None

    @model_validator(mode="after")
    def validate_scores(self) -> "ExamCreate":
        if self.passing_score > self.max_score:
            raise ValueError("passing_score cannot exceed max_score")
        return self


class ExamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    term: Optional[str] = Field(None, min_length=1, max_length=50)
    academic_year: Optional[str] = None
    exam_date: Optional[date] = None
    max_score: Optional[float] = Field(None, ge=1)
    passing_score: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None


class ExamResponse(BaseModel):
    id: UUID
    name: str
    term: str
    academic_year: str
    exam_date: Optional[date] = None
    max_score: float
    passing_score: float
    description: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    warning: Optional[str] = None

    class Config:
        from_attributes = True


class ExamStatistics(BaseModel):
    students_taken: int = Field(0, description="Scores recorded, including did-not-sit")
    did_not_sit: int = 0
    average_percentage: Optional[float] = None
    highest_percentage: Optional[float] = None
    lowest_percentage: Optional[float] = None
    pass_count: int = 0
    pass_rate: Optional[float] = None
    grade_distribution: Dict[str, int] = Field(default_factory=dict)


class ScoreCreate(BaseModel):
    student_id: UUID
    score: Optional[float] = Field(None, ge=0)
    did_not_sit: bool = False

    @model_validator(mode="after")
    def validate_score(self) -> "ScoreCreate":
        if not self.did_not_sit and self.score is None:
            raise ValueError("score is required unless did_not_sit is set")
        return self


class ScoreResponse(BaseModel):
    id: UUID = Field(..., description="Score id (stable across academic years)")
    student_id: UUID
    student_name: Optional[str] = None
    admission_number: Optional[str] = None
    exam_id: UUID
    score: Optional[float] = None
    did_not_sit: bool
    percentage: Optional[float] = None
    grade: Optional[str] = None
    grade_description: Optional[str] = None
    passed: Optional[bool] = None
    academic_year_recorded: str
    updated_at: datetime


class ExamDetailResponse(BaseModel):
    exam: ExamResponse
    statistics: ExamStatistics
    scores: List[ScoreResponse]


class StudentExamResult(BaseModel):
    exam_id: UUID
    exam_name: str
    term: str
    academic_year: str
    exam_date: Optional[date] = None
    max_score: float
    passing_score: float
    score: Optional[float] = None
    did_not_sit: bool
    percentage: Optional[float] = None
    grade: Optional[str] = None
    grade_description: Optional[str] = None
    passed: Optional[bool] = None


class ScoreImportRowError(BaseModel):
    row: int
    student: Optional[str] = None
    reason: str


class ScoreImportResponse(BaseModel):
    recorded: int
    skipped: List[ScoreImportRowError] = Field(default_factory=list)
