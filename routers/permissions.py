# routers/permissions.py

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from core.errors import PermissionDenied
from core.permission_helpers import PermissionResolver
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import get_resolver
from models.enums import Role


router = APIRouter(
    prefix="/permissions",
    tags=["Permissions"],
)


class PermissionCheck(BaseModel):
    site_id: str
    user_id: Optional[str] = None
    role: str
    module: str
    action: str
    allowed: bool
    decided_by: str


class EffectivePermissions(BaseModel):
    site_id: str
    role: str
    permissions: Dict[str, Dict[str, bool]]


# -----------------------------------------------------
# GET /permissions/check
# -----------------------------------------------------
@router.get("/check", response_model=PermissionCheck, summary="Resolve one permission")
def check_permission(
    site_id: str = Query(...),
    module: str = Query(..., description="RFA or WORK_REQUEST"),
    action: str = Query(..., description="e.g. create_shop, review, approve"),
    role: Optional[Role] = Query(None, description="Defaults to the caller's role"),
    user_id: Optional[str] = Query(None, description="Defaults to the caller"),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: PermissionResolver = Depends(get_resolver),
):
    """
    Unknown module/action pairs resolve to false. Checking on behalf of
    another user or role requires Admin.
    """
    role_value = str(role) if role else current_user.role
    subject = user_id or current_user.id

    if (subject != current_user.id or role_value != current_user.role) and not current_user.is_admin:
        raise PermissionDenied(
            "Permission denied: only an Admin may check permissions of another user or role",
            role=current_user.role,
        )

    allowed, decided_by = resolver.explain(site_id, subject, role_value, module, action)
    return PermissionCheck(
        site_id=site_id,
        user_id=subject,
        role=role_value,
        module=module,
        action=action,
        allowed=allowed,
        decided_by=decided_by,
    )


# -----------------------------------------------------
# GET /permissions/me
# -----------------------------------------------------
@router.get("/me", response_model=EffectivePermissions, summary="Caller's permissions at a site")
def my_permissions(
    site_id: str = Query(...),
    current_user: CurrentUser = Depends(get_current_user),
    resolver: PermissionResolver = Depends(get_resolver),
):
    return EffectivePermissions(
        site_id=site_id,
        role=current_user.role,
        permissions=resolver.effective_permissions(site_id, current_user.id, current_user.role),
    )
