# models/user.py

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from models.enums import Role, UserStatus


# ===============================================================
# USER PROFILE (users table, keyed by Supabase Auth uid)
# ===============================================================

class UserProfile(BaseModel):
    """
    Profile document of a provisioned user.
    """
    id: str
    email: EmailStr
    role: Role
    sites: List[str] = []
    status: UserStatus = UserStatus.ACTIVE

    name: Optional[str] = None
    employee_id: Optional[str] = None
    phone: Optional[str] = None

    created_from_invitation: bool = False
    accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    """Self-service profile fields."""
    name: Optional[str] = None
    phone: Optional[str] = None


class UserAdminUpdate(BaseModel):
    """
    Partial update of role / sites / status (admin only)
    """
    role: Optional[Role] = None
    sites: Optional[List[str]] = Field(None, description="Replaces the user's site set")
    status: Optional[UserStatus] = None
