# routers/rfa.py

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from supabase import Client

from core.documents import DocumentService
from core.notifications import NotificationFanout, dispatch_notification
from core.workflow import RFA_WORKFLOW, WorkflowEngine
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import (
    get_document_service,
    get_fanout,
    get_rfa_engine,
    get_store_client,
)
from models.document import (
    RevisionCreate,
    RevisionResult,
    RfaCreate,
    RfaRead,
    TransitionRequest,
    TransitionResult,
)
from models.enums import RfaStatus


router = APIRouter(
    prefix="/rfa",
    tags=["RFA"],
)


# -----------------------------------------------------
# Create
# -----------------------------------------------------
@router.post("", response_model=RfaRead, status_code=201, summary="Submit a new RFA")
def create_rfa(
    payload: RfaCreate,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    """
    Requires create_shop / create_gen / create_mat (by rfa_type) at the site.
    The RFA starts at PENDING_REVIEW as revision 0 of a new document number.
    """
    outcome = service.create_rfa(current_user.actor, payload)
    background.add_task(dispatch_notification, fanout, client, outcome.notification)
    return outcome.document


# -----------------------------------------------------
# Read
# -----------------------------------------------------
@router.get("", response_model=List[RfaRead], summary="List RFAs of a site")
def list_rfa(
    site_id: str = Query(...),
    status: Optional[RfaStatus] = Query(None),
    include_superseded: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.list_documents(
        RFA_WORKFLOW, site_id, current_user.actor,
        status=str(status) if status else None,
        include_superseded=include_superseded,
    )


@router.get("/{rfa_id}", response_model=RfaRead, summary="Get one RFA revision")
def get_rfa(
    rfa_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.get_document(RFA_WORKFLOW, rfa_id, current_user.actor)


@router.get("/{rfa_id}/history", response_model=List[RfaRead], summary="All revisions of an RFA")
def rfa_history(
    rfa_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.history(RFA_WORKFLOW, rfa_id, current_user.actor)


# -----------------------------------------------------
# Workflow
# -----------------------------------------------------
@router.post("/{rfa_id}/transition", response_model=TransitionResult, summary="Move an RFA to its next status")
def transition_rfa(
    rfa_id: str,
    payload: TransitionRequest,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_rfa_engine),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    """
    `review` gates moves out of PENDING_REVIEW, `approve` gates moves out
    of PENDING_CM_APPROVAL. Send `expected_status` to fail with 409 when
    someone else moved the document first.
    """
    outcome = engine.transition(
        rfa_id,
        current_user.actor,
        payload.target_status,
        payload.comments,
        expected_status=payload.expected_status,
        files=payload.files,
    )
    background.add_task(dispatch_notification, fanout, client, outcome.notification)

    return TransitionResult(
        id=rfa_id,
        previous_status=outcome.previous_status,
        status=outcome.document["status"],
        step=outcome.step,
    )


@router.post("/{rfa_id}/revisions", response_model=RevisionResult, status_code=201, summary="Submit a new revision")
def submit_rfa_revision(
    rfa_id: str,
    payload: RevisionCreate,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    outcome = service.submit_revision(RFA_WORKFLOW, rfa_id, current_user.actor, payload)
    background.add_task(dispatch_notification, fanout, client, outcome.notification)

    document = outcome.document
    return RevisionResult(
        id=document["id"],
        document_number=document["document_number"],
        revision_number=document["revision_number"],
        status=document["status"],
    )
