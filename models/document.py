from datetime import date
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from models.enums import RfaType, RfaStatus, WorkRequestPriority, WorkRequestStatus


# ======================================================
# Helpers
# ======================================================

def _strip_or_none(value):
    if isinstance(value, str):
        value = value.strip()
        if not value or value.lower() in {"string", "null", "undefined"}:
            return None
    return value


# ======================================================
# FILES / WORKFLOW STEPS
# ======================================================

class StagedFile(BaseModel):
    """A file previously staged through POST /uploads/temp."""
    file_name: str
    file_path: str
    size: Optional[int] = None
    content_type: Optional[str] = None


class WorkflowStep(BaseModel):
    """
    Immutable audit record of one actor's action on a document.
    Stored in order inside the document's `workflow` array.
    """
    action: str
    status: str
    user_id: str
    user_name: Optional[str] = None
    role: str
    timestamp: str
    comments: str = ""
    files: List[Dict[str, Any]] = []


# ======================================================
# RFA
# ======================================================

class RfaCreate(BaseModel):
    site_id: str = Field(..., description="Site ID. Get from GET /sites endpoint.")
    rfa_type: RfaType
    title: str = Field(..., min_length=1)
    description: str = ""
    category_id: Optional[str] = Field(None, description="Optional category from GET /sites/{site_id}/categories")
    priority: WorkRequestPriority = WorkRequestPriority.NORMAL
    files: List[StagedFile] = []
    task_data: Optional[Dict[str, Any]] = None

    @field_validator("category_id", mode="before")
    def clean_category_id(cls, v):
        return _strip_or_none(v)


class RfaRead(BaseModel):
    id: str
    site_id: str
    document_number: str
    revision_number: int = 0
    is_latest: bool = True
    rfa_type: RfaType
    status: RfaStatus
    title: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[str] = None
    created_by: str
    parent_id: Optional[str] = None
    revision_history: List[str] = []
    files: List[Dict[str, Any]] = []
    workflow: List[WorkflowStep] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ======================================================
# WORK REQUEST
# ======================================================

class WorkRequestCreate(BaseModel):
    site_id: str
    task_name: str = Field(..., min_length=1)
    description: str = ""
    due_date: date
    priority: WorkRequestPriority = WorkRequestPriority.NORMAL
    files: List[StagedFile] = []


class WorkRequestRead(BaseModel):
    id: str
    site_id: str
    document_number: str
    revision_number: int = 0
    is_latest: bool = True
    status: WorkRequestStatus
    task_name: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    priority: Optional[str] = None
    created_by: str
    assigned_to: Optional[str] = None
    parent_id: Optional[str] = None
    revision_history: List[str] = []
    files: List[Dict[str, Any]] = []
    workflow: List[WorkflowStep] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


# ======================================================
# TRANSITIONS / REVISIONS
# ======================================================

class TransitionRequest(BaseModel):
    target_status: str
    comments: str = ""
    expected_status: Optional[str] = Field(
        None,
        description="Status the caller last saw; the transition fails with 409 if it changed.",
    )
    files: List[Dict[str, Any]] = []


class TransitionResult(BaseModel):
    id: str
    previous_status: str
    status: str
    step: WorkflowStep


class BatchTransitionRequest(BaseModel):
    ids: List[str] = Field(..., min_length=1)
    target_status: str
    comments: str = ""


class BatchTransitionResult(BaseModel):
    updated: List[str] = []
    errors: List[Dict[str, str]] = []


class RevisionCreate(BaseModel):
    files: List[StagedFile] = Field(..., min_length=1)
    comments: str = ""


class RevisionResult(BaseModel):
    id: str
    document_number: str
    revision_number: int
    status: str
