from typing import Optional, List
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from supabase import Client

from core.errors import PermissionDenied, Unauthorized, supabase_error
from core.workflow import Actor
from dependencies.services import get_store_client
from models.enums import Role, UserStatus


bearer_scheme = HTTPBearer()


# ============================================================
# Current User Model (profile from the users table)
# ============================================================
class CurrentUser(BaseModel):
    id: str
    email: str
    role: str
    sites: List[str] = []
    status: str = UserStatus.ACTIVE.value

    name: Optional[str] = None
    employee_id: Optional[str] = None
    phone: Optional[str] = None

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.id, role=self.role, name=self.name, sites=tuple(self.sites))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


# ============================================================
# AUTH DECODING (Supabase: validates JWT + loads profile)
# ============================================================
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    client: Client = Depends(get_store_client),
) -> CurrentUser:

    token = credentials.credentials

    # ---------------------------------------------------------
    # Validate JWT via Supabase GoTrue
    # ---------------------------------------------------------
    try:
        auth_resp = client.auth.get_user(token)
    except Exception:
        raise Unauthorized("Invalid or expired authentication token")

    if not auth_resp or not auth_resp.user:
        raise Unauthorized("Invalid or expired authentication token")

    user_id = auth_resp.user.id

    # ---------------------------------------------------------
    # Profile (role, sites, status)
    # ---------------------------------------------------------
    try:
        rows = (
            client.table("users")
            .select("*")
            .eq("id", user_id)
            .limit(1)
            .execute()
        ).data
    except Exception as e:
        supabase_error(e, "Failed to load user profile")

    if not rows:
        raise Unauthorized("User not found")

    profile = rows[0]
    if profile.get("status") == UserStatus.DISABLED.value:
        raise Unauthorized("This account has been disabled")

    return CurrentUser(
        id=profile["id"],
        email=profile.get("email") or auth_resp.user.email,
        role=profile.get("role"),
        sites=profile.get("sites") or [],
        status=profile.get("status") or UserStatus.ACTIVE.value,
        name=profile.get("name"),
        employee_id=profile.get("employee_id"),
        phone=profile.get("phone"),
    )


# ============================================================
# ROLE CHECKER (basic role list guard)
# ============================================================
def requires_role(allowed_roles: list[str]):
    allowed = [str(r) for r in allowed_roles]

    def checker(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in allowed:
            raise PermissionDenied(
                f"Permission denied: requires one of {allowed}, not '{current_user.role}'",
                role=current_user.role,
            )
        return current_user
    return checker


require_admin = requires_role([Role.ADMIN])
