from typing import List, Optional
from pydantic import BaseModel, Field


class DispatchReport(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    invalid_endpoints: List[str] = []


class NotificationRequest(BaseModel):
    """
    Produced by the workflow engine after a transition; the caller resolves
    `recipient_roles` to users of `site_id` and merges them with
    `recipient_user_ids` before dispatching.
    """
    site_id: str
    title: str
    body: str
    url: str
    recipient_roles: List[str] = []
    recipient_user_ids: List[str] = []


class NotifyRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1)
    title: str
    body: str
    url: Optional[str] = None


class DeviceRegistration(BaseModel):
    token: str = Field(..., min_length=1)
