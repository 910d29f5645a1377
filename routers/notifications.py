# routers/notifications.py

from fastapi import APIRouter, Depends
from supabase import Client

from core.errors import supabase_error
from core.notifications import NotificationFanout, PushRegistry
from dependencies.auth import CurrentUser, get_current_user, require_admin
from dependencies.services import get_fanout, get_store_client
from models.notification import DeviceRegistration, DispatchReport, NotifyRequest


router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
)


@router.post("/devices", summary="Register a push endpoint for the caller")
def register_device(
    payload: DeviceRegistration,
    current_user: CurrentUser = Depends(get_current_user),
    client: Client = Depends(get_store_client),
):
    try:
        PushRegistry(client).register(current_user.id, payload.token)
    except Exception as e:
        supabase_error(e, "Failed to register push endpoint")
    return {"registered": True}


@router.delete("/devices", summary="Remove one of the caller's push endpoints")
def remove_device(
    payload: DeviceRegistration,
    current_user: CurrentUser = Depends(get_current_user),
    client: Client = Depends(get_store_client),
):
    try:
        removed = PushRegistry(client).remove(current_user.id, payload.token)
    except Exception as e:
        supabase_error(e, "Failed to remove push endpoint")
    return {"removed": removed}


@router.post("/send", response_model=DispatchReport, summary="Push a message to users (Admin)")
def send_notification(
    payload: NotifyRequest,
    current_user: CurrentUser = Depends(require_admin),
    fanout: NotificationFanout = Depends(get_fanout),
):
    """
    Best effort: the report counts delivered and failed endpoints; users
    without registered endpoints simply contribute nothing.
    """
    return fanout.send(payload.user_ids, payload.title, payload.body, payload.url)
