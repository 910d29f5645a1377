# routers/invitations.py

from fastapi import APIRouter, Depends, Request

from core.invitations import InvitationLedger
from core.rate_limiter import (
    INVITATION_MAX_REQUESTS,
    INVITATION_WINDOW_SECONDS,
    require_rate_limit,
)
from dependencies.auth import CurrentUser, require_admin
from dependencies.services import get_invitation_ledger
from models.invitation import (
    BatchInvitationCreate,
    BatchInvitationResult,
    InvitationAccept,
    InvitationCreate,
    InvitationResult,
    InvitationView,
)
from models.user import UserProfile


router = APIRouter(
    prefix="/invitations",
    tags=["Invitations"],
)


# -----------------------------------------------------
# Issue (Admin)
# -----------------------------------------------------
@router.post("", response_model=InvitationResult, status_code=201, summary="Invite a user")
def create_invitation(
    payload: InvitationCreate,
    current_user: CurrentUser = Depends(require_admin),
    ledger: InvitationLedger = Depends(get_invitation_ledger),
):
    """
    Fails with 409 when the e-mail or employee ID already belongs to a user.
    The invitation link is valid for INVITATION_TTL_DAYS days.
    """
    return ledger.issue(payload, invited_by=current_user.id)


@router.post("/batch", response_model=BatchInvitationResult, summary="Invite many users to the same sites")
def create_invitations_batch(
    payload: BatchInvitationCreate,
    current_user: CurrentUser = Depends(require_admin),
    ledger: InvitationLedger = Depends(get_invitation_ledger),
):
    return ledger.issue_batch(payload, invited_by=current_user.id)


# -----------------------------------------------------
# Accept (public, rate limited)
# -----------------------------------------------------
@router.post("/accept", response_model=UserProfile, summary="Accept an invitation and set a password")
def accept_invitation(
    payload: InvitationAccept,
    request: Request,
    ledger: InvitationLedger = Depends(get_invitation_ledger),
):
    require_rate_limit(
        request,
        max_requests=INVITATION_MAX_REQUESTS,
        window_seconds=INVITATION_WINDOW_SECONDS,
    )
    return ledger.accept(payload.token, payload.password)


@router.get("/{token}", response_model=InvitationView, summary="Invitation details for the acceptance page")
def get_invitation(
    token: str,
    request: Request,
    ledger: InvitationLedger = Depends(get_invitation_ledger),
):
    require_rate_limit(
        request,
        max_requests=INVITATION_MAX_REQUESTS,
        window_seconds=INVITATION_WINDOW_SECONDS,
    )
    return ledger.lookup(token)
