# dependencies/services.py
# Builds the core components per request around the store client.

from typing import Optional

from fastapi import Depends
from supabase import Client

from core.config import settings
from core.documents import DocumentService
from core.errors import StoreUnavailable
from core.invitations import InvitationLedger
from core.logging_config import logger
from core.notifications import NotificationFanout
from core.permission_helpers import PermissionResolver
from core.policy_store import PolicyStore
from core.s3_client import BlobStaging
from core.supabase_client import get_supabase_client
from core.workflow import RFA_WORKFLOW, WORK_REQUEST_WORKFLOW, WorkflowEngine


def get_store_client() -> Client:
    client = get_supabase_client(settings.STORE_TIMEOUT_SECONDS)
    if not client:
        raise StoreUnavailable("Document store is not configured")
    return client


def get_policy_store(client: Client = Depends(get_store_client)) -> PolicyStore:
    return PolicyStore(client)


def get_resolver(store: PolicyStore = Depends(get_policy_store)) -> PermissionResolver:
    return PermissionResolver(store)


def get_blob_staging() -> Optional[BlobStaging]:
    try:
        return BlobStaging()
    except RuntimeError as e:
        logger.debug(f"Blob staging unavailable: {e}")
        return None


def get_document_service(
    client: Client = Depends(get_store_client),
    resolver: PermissionResolver = Depends(get_resolver),
    blobs: Optional[BlobStaging] = Depends(get_blob_staging),
) -> DocumentService:
    return DocumentService(client, resolver, blobs=blobs)


def get_rfa_engine(
    client: Client = Depends(get_store_client),
    resolver: PermissionResolver = Depends(get_resolver),
) -> WorkflowEngine:
    return WorkflowEngine(RFA_WORKFLOW, resolver, client)


def get_work_request_engine(
    client: Client = Depends(get_store_client),
    resolver: PermissionResolver = Depends(get_resolver),
) -> WorkflowEngine:
    return WorkflowEngine(WORK_REQUEST_WORKFLOW, resolver, client)


def get_invitation_ledger(client: Client = Depends(get_store_client)) -> InvitationLedger:
    return InvitationLedger(client)


def get_fanout(client: Client = Depends(get_store_client)) -> NotificationFanout:
    return NotificationFanout(client)
