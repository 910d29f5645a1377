# models/invitation.py

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from models.enums import InvitationStatus, Role


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Role
    sites: List[str] = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    employee_id: str = Field(..., min_length=1)


class InvitationResult(BaseModel):
    token: str
    url: str
    expires_at: datetime


class InvitationView(BaseModel):
    """
    What the acceptance page may show. No token, no password step internals.
    """
    email: EmailStr
    name: Optional[str] = None
    role: Role
    sites: List[str] = []
    status: InvitationStatus
    expires_at: datetime


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


# -----------------------------------------------------
# Batch issue
# -----------------------------------------------------
class BatchInvitee(BaseModel):
    email: EmailStr
    role: Role
    name: str = Field(..., min_length=1)
    employee_id: str = Field(..., min_length=1)


class BatchInvitationCreate(BaseModel):
    users: List[BatchInvitee] = Field(..., min_length=1)
    sites: List[str] = Field(..., min_length=1)


class BatchInvitationResult(BaseModel):
    success: int = 0
    failed: int = 0
    details: List[dict] = []
