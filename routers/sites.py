# routers/sites.py

from typing import List
import uuid

from fastapi import APIRouter, Depends
from supabase import Client

from core.errors import NotFound, PermissionDenied, supabase_error
from core.logging_config import logger
from core.policy_store import PolicyStore
from dependencies.auth import CurrentUser, get_current_user, require_admin
from dependencies.services import get_policy_store, get_store_client
from models.category import CategoryCreate, CategoryRead
from models.site import RoleSettingsUpdate, SiteRead, UserOverridesUpdate


router = APIRouter(
    prefix="/sites",
    tags=["Sites"],
)


def require_site_member(current_user: CurrentUser, site_id: str):
    if current_user.is_admin or site_id in current_user.sites:
        return
    raise PermissionDenied(
        f"Permission denied: user {current_user.id} is not a member of site {site_id}",
        role=current_user.role, site_id=site_id,
    )


# -----------------------------------------------------
# GET /sites
# -----------------------------------------------------
@router.get("", response_model=List[SiteRead], summary="Sites visible to the caller")
def list_sites(
    current_user: CurrentUser = Depends(get_current_user),
    client: Client = Depends(get_store_client),
):
    query = client.table("sites").select("id, name, short_name, description")
    if not current_user.is_admin:
        if not current_user.sites:
            return []
        query = query.in_("id", current_user.sites)

    try:
        result = query.order("name").execute()
    except Exception as e:
        supabase_error(e, "Failed to list sites")
    return result.data or []


# -----------------------------------------------------
# Categories
# -----------------------------------------------------
@router.get("/{site_id}/categories", response_model=List[CategoryRead], summary="Active categories of a site")
def list_categories(
    site_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    client: Client = Depends(get_store_client),
):
    require_site_member(current_user, site_id)

    try:
        result = (
            client.table("categories")
            .select("*")
            .eq("site_id", site_id)
            .eq("active", True)
            .order("sequence")
            .execute()
        )
    except Exception as e:
        supabase_error(e, "Failed to list categories")
    return result.data or []


@router.post(
    "/{site_id}/categories",
    response_model=CategoryRead,
    status_code=201,
    summary="Create a category (Admin)",
)
def create_category(
    site_id: str,
    payload: CategoryCreate,
    current_user: CurrentUser = Depends(require_admin),
    client: Client = Depends(get_store_client),
):
    row = {
        "id": str(uuid.uuid4()),
        "site_id": site_id,
        "category_code": payload.category_code.strip(),
        "category_name": payload.category_name.strip(),
        "rfa_types": [str(t) for t in payload.rfa_types],
        "sequence": payload.sequence,
        "active": payload.active,
    }

    try:
        site = client.table("sites").select("id").eq("id", site_id).limit(1).execute()
    except Exception as e:
        supabase_error(e, "Failed to load site")
    if not site.data:
        raise NotFound(f"Site {site_id} not found")

    try:
        result = client.table("categories").insert(row).execute()
    except Exception as e:
        supabase_error(e, "Failed to create category")

    logger.info(f"Category {row['category_code']} created at site {site_id} by {current_user.id}")
    return result.data[0] if result.data else row


# -----------------------------------------------------
# Policy administration (Admin)
# -----------------------------------------------------
@router.put("/{site_id}/overrides/{user_id}", summary="Replace one user's permission overrides")
def put_user_overrides(
    site_id: str,
    user_id: str,
    payload: UserOverridesUpdate,
    current_user: CurrentUser = Depends(require_admin),
    store: PolicyStore = Depends(get_policy_store),
):
    """
    An empty `overrides` map removes the user's entry so role policy applies again.
    """
    store.set_user_overrides(site_id, user_id, payload.overrides)
    return {"site_id": site_id, "user_id": user_id, "overrides": payload.overrides}


@router.put("/{site_id}/role-settings", summary="Replace the site's role policy")
def put_role_settings(
    site_id: str,
    payload: RoleSettingsUpdate,
    current_user: CurrentUser = Depends(require_admin),
    store: PolicyStore = Depends(get_policy_store),
):
    stored = store.set_role_settings(site_id, payload.as_stored())
    return {"site_id": site_id, "role_settings": stored}
