from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class BackupDocument(BaseModel):
    version: int
    created_at: datetime
    data: Dict[str, List[Dict[str, Any]]] = Field(..., description="Rows keyed by table name")


class RestoreRequest(BaseModel):
    version: Optional[int] = None
    created_at: Optional[datetime] = None
    data: Dict[str, List[Dict[str, Any]]]


class FactoryResetRequest(BaseModel):
    confirm: str = Field(..., description='Must be "RESET"')


class MaintenanceResult(BaseModel):
    message: str
    academic_year: Optional[str] = Field(None, description="Current academic year afterwards")
    rows_restored: Optional[int] = None


class WipeAcademicDataRequest(BaseModel):
    confirm: str = Field(..., description='Must be "WIPE"')


class WipeTablesRequest(BaseModel):
    tables: List[
        Literal["audit_logs", "student_photos", "student_letters", "timeline_events", "student_exam_scores", "exams"]
    ] = Field(..., min_length=1)


class WipeResult(BaseModel):
    message: str
    tables: List[str] = Field(..., description="Tables cleared, in delete order")
    rows_deleted: int
