# routers/work_requests.py

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from supabase import Client

from core.documents import DocumentService
from core.errors import ValidationFailed
from core.notifications import NotificationFanout, dispatch_notification
from core.workflow import WORK_REQUEST_WORKFLOW, WorkflowEngine
from dependencies.auth import CurrentUser, get_current_user
from dependencies.services import (
    get_document_service,
    get_fanout,
    get_store_client,
    get_work_request_engine,
)
from models.document import (
    BatchTransitionRequest,
    BatchTransitionResult,
    RevisionCreate,
    RevisionResult,
    TransitionRequest,
    TransitionResult,
    WorkRequestCreate,
    WorkRequestRead,
)
from models.enums import WorkRequestStatus


router = APIRouter(
    prefix="/work-requests",
    tags=["Work Requests"],
)


# -----------------------------------------------------
# Create
# -----------------------------------------------------
@router.post("", response_model=WorkRequestRead, status_code=201, summary="Create a work request draft")
def create_work_request(
    payload: WorkRequestCreate,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    outcome = service.create_work_request(current_user.actor, payload)
    background.add_task(dispatch_notification, fanout, client, outcome.notification)
    return outcome.document


# -----------------------------------------------------
# Batch (registered before /{work_request_id} routes)
# -----------------------------------------------------
@router.post("/batch-transition", response_model=BatchTransitionResult, summary="Approve or reject many drafts")
def batch_transition(
    payload: BatchTransitionRequest,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    """
    Applies one approve_draft target to every listed draft. Documents that
    are not drafts, or that the caller may not approve, are reported in
    `errors` without stopping the rest.
    """
    draft = WorkRequestStatus.DRAFT.value
    allowed = WORK_REQUEST_WORKFLOW.targets_from(draft)
    if payload.target_status not in allowed:
        raise ValidationFailed(
            f"Batch target must be one of {sorted(allowed)}, not '{payload.target_status}'"
        )

    summary, outcomes = service.batch_transition(
        WORK_REQUEST_WORKFLOW,
        payload.ids,
        current_user.actor,
        payload.target_status,
        payload.comments,
        from_status=draft,
    )
    for outcome in outcomes:
        background.add_task(dispatch_notification, fanout, client, outcome.notification)

    return summary


# -----------------------------------------------------
# Read
# -----------------------------------------------------
@router.get("", response_model=List[WorkRequestRead], summary="List work requests of a site")
def list_work_requests(
    site_id: str = Query(...),
    status: Optional[WorkRequestStatus] = Query(None),
    include_superseded: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.list_documents(
        WORK_REQUEST_WORKFLOW, site_id, current_user.actor,
        status=str(status) if status else None,
        include_superseded=include_superseded,
    )


@router.get("/{work_request_id}", response_model=WorkRequestRead, summary="Get one work request revision")
def get_work_request(
    work_request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.get_document(WORK_REQUEST_WORKFLOW, work_request_id, current_user.actor)


@router.get("/{work_request_id}/history", response_model=List[WorkRequestRead], summary="All revisions")
def work_request_history(
    work_request_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return service.history(WORK_REQUEST_WORKFLOW, work_request_id, current_user.actor)


# -----------------------------------------------------
# Workflow
# -----------------------------------------------------
@router.post("/{work_request_id}/transition", response_model=TransitionResult, summary="Move a work request")
def transition_work_request(
    work_request_id: str,
    payload: TransitionRequest,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_work_request_engine),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    outcome = engine.transition(
        work_request_id,
        current_user.actor,
        payload.target_status,
        payload.comments,
        expected_status=payload.expected_status,
        files=payload.files,
    )
    background.add_task(dispatch_notification, fanout, client, outcome.notification)

    return TransitionResult(
        id=work_request_id,
        previous_status=outcome.previous_status,
        status=outcome.document["status"],
        step=outcome.step,
    )


@router.post(
    "/{work_request_id}/revisions",
    response_model=RevisionResult,
    status_code=201,
    summary="Resubmit after a revision request",
)
def submit_work_request_revision(
    work_request_id: str,
    payload: RevisionCreate,
    background: BackgroundTasks,
    current_user: CurrentUser = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
    fanout: NotificationFanout = Depends(get_fanout),
    client: Client = Depends(get_store_client),
):
    outcome = service.submit_revision(WORK_REQUEST_WORKFLOW, work_request_id, current_user.actor, payload)
    background.add_task(dispatch_notification, fanout, client, outcome.notification)

    document = outcome.document
    return RevisionResult(
        id=document["id"],
        document_number=document["document_number"],
        revision_number=document["revision_number"],
        status=document["status"],
    )
