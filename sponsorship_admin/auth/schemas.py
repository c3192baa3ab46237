from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class UserInfo(BaseModel):
    id: UUID
    name: Optional[str] = None
    email: EmailStr
    role: str
    avatar_url: Optional[str] = None


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo
    academic_year: Optional[str] = Field(None, description="Current academic year at login, if any")
    issued_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = None
    password: Optional[str] = Field(None, min_length=8)


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Dict[str, Dict[str, bool]] = Field(default_factory=dict)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    permissions: Optional[Dict[str, Dict[str, bool]]] = None


class RoleResponse(BaseModel):
    """Role with granular permissions (create/read/update/delete per module)."""

    id: UUID
    name: str
    description: Optional[str] = None
    permissions: Dict[str, Dict[str, bool]]
    is_system: bool = False

    class Config:
        from_attributes = True


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks."""

    id: UUID
    email: str
    role: str
    permissions: Dict[str, Dict[str, bool]]
