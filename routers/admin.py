# routers/admin.py

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from supabase import Client

from core.errors import NotFound, ValidationFailed, supabase_error
from core.logging_config import logger
from core.revisions import RevisionChain
from core.workflow import RFA_WORKFLOW, WORK_REQUEST_WORKFLOW
from dependencies.auth import CurrentUser, require_admin
from dependencies.services import get_store_client
from models.user import UserAdminUpdate, UserProfile


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
)


MIGRATABLE_TABLES = [RFA_WORKFLOW.table, WORK_REQUEST_WORKFLOW.table]


# -----------------------------------------------------
# Users
# -----------------------------------------------------
@router.get("/users", response_model=List[UserProfile], summary="List users")
def list_users(
    site_id: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(require_admin),
    client: Client = Depends(get_store_client),
):
    query = client.table("users").select("*")
    if site_id:
        query = query.contains("sites", [site_id])

    try:
        result = query.order("email").execute()
    except Exception as e:
        supabase_error(e, "Failed to list users")
    return result.data or []


@router.patch("/users/{user_id}", response_model=UserProfile, summary="Update a user's role, sites or status")
def update_user(
    user_id: str,
    payload: UserAdminUpdate,
    current_user: CurrentUser = Depends(require_admin),
    client: Client = Depends(get_store_client),
):
    """
    Setting status to DISABLED locks the account out at authentication.
    """
    updates = payload.model_dump(exclude_none=True, mode="json")
    if not updates:
        raise ValidationFailed("Nothing to update: send role, sites or status")

    try:
        result = client.table("users").update(updates).eq("id", user_id).execute()
    except Exception as e:
        supabase_error(e, "Failed to update user")

    if not result.data:
        raise NotFound(f"User {user_id} not found")

    logger.info(f"Admin {current_user.id} updated user {user_id}: {sorted(updates)}")
    return result.data[0]


# -----------------------------------------------------
# Legacy revision backfill
# -----------------------------------------------------
@router.post("/migrate-revisions", summary="Backfill revision fields on legacy documents")
def migrate_revisions(
    collection: Optional[str] = Query(None, description="rfa_documents or work_requests; both when omitted"),
    current_user: CurrentUser = Depends(require_admin),
    client: Client = Depends(get_store_client),
):
    """
    Gives documents created before revisions existed revision_number 0 and
    marks the newest of each family as latest. Safe to run repeatedly.
    """
    if collection and collection not in MIGRATABLE_TABLES:
        raise ValidationFailed(f"collection must be one of {MIGRATABLE_TABLES}")

    tables = [collection] if collection else MIGRATABLE_TABLES
    report: Dict[str, Dict[str, str]] = {}

    for table in tables:
        report[table] = RevisionChain(client, table).backfill_collection()

    logger.info(f"Revision migration run by {current_user.id}")
    return {
        "updated": sum(len(r) for r in report.values()),
        "details": report,
    }
