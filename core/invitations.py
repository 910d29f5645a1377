# core/invitations.py

"""
Invitation ledger.

An invitation is a PENDING row in `invitations` keyed by an unguessable
token. Accepting it provisions a Supabase Auth user plus a `users`
profile, exactly once: the token is claimed with a conditional update
(PENDING → ACCEPTED) before anything is provisioned, so of two concurrent
accepts only one can win the claim.
"""

import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from supabase import Client

from core.config import settings
from core.email_utils import send_invitation_email
from core.errors import (
    Conflict,
    DocControlError,
    Expired,
    InvitationAlreadyUsed,
    NotFound,
    StoreUnavailable,
    extract_supabase_error,
    supabase_error,
)
from core.logging_config import logger
from core.workflow import utc_now
from models.enums import InvitationStatus, UserStatus
from models.invitation import (
    BatchInvitationCreate,
    BatchInvitationResult,
    InvitationCreate,
    InvitationResult,
    InvitationView,
)
from models.user import UserProfile


def parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def invitation_url(token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/accept-invitation?token={token}"


class InvitationLedger:
    def __init__(
        self,
        client: Client,
        clock: Callable[[], datetime] = utc_now,
        ttl_days: Optional[int] = None,
        mailer: Optional[Callable] = send_invitation_email,
    ):
        self.client = client
        self.clock = clock
        self.ttl_days = ttl_days if ttl_days is not None else settings.INVITATION_TTL_DAYS
        self.mailer = mailer

    # -----------------------------------------------------
    # Issue
    # -----------------------------------------------------
    def ensure_not_provisioned(self, email: str, employee_id: str):
        for column, value in (("email", email), ("employee_id", employee_id)):
            try:
                result = (
                    self.client.table("users")
                    .select("id")
                    .eq(column, value)
                    .limit(1)
                    .execute()
                )
            except Exception as e:
                supabase_error(e, "Failed to check existing users")

            if result.data:
                raise Conflict(f"A user with {column} '{value}' already exists")

    def issue(self, payload: InvitationCreate, invited_by: Optional[str] = None) -> InvitationResult:
        email = str(payload.email).lower()
        employee_id = payload.employee_id.strip()
        self.ensure_not_provisioned(email, employee_id)

        token = secrets.token_hex(32)
        now = self.clock()
        expires_at = now + timedelta(days=self.ttl_days)

        row = {
            "id": token,
            "email": email,
            "role": str(payload.role),
            "sites": list(payload.sites),
            "name": payload.name.strip(),
            "employee_id": employee_id,
            "status": InvitationStatus.PENDING.value,
            "invited_by": invited_by,
            "created_at": now.isoformat(),
            "expires_at": expires_at.isoformat(),
        }

        try:
            self.client.table("invitations").insert(row).execute()
        except Exception as e:
            supabase_error(e, "Failed to create invitation")

        url = invitation_url(token)
        logger.info(f"Invitation issued to {email} (role {payload.role}), expires {expires_at.isoformat()}")

        if self.mailer:
            try:
                self.mailer(email, url, expires_at, row["name"])
            except Exception as e:
                logger.warning(f"Invitation e-mail to {email} failed: {e}")

        return InvitationResult(token=token, url=url, expires_at=expires_at)

    def issue_batch(self, payload: BatchInvitationCreate, invited_by: Optional[str] = None) -> BatchInvitationResult:
        summary = BatchInvitationResult()

        for invitee in payload.users:
            try:
                result = self.issue(
                    InvitationCreate(
                        email=invitee.email,
                        role=invitee.role,
                        sites=payload.sites,
                        name=invitee.name,
                        employee_id=invitee.employee_id,
                    ),
                    invited_by=invited_by,
                )
            except DocControlError as e:
                summary.failed += 1
                summary.details.append({"email": str(invitee.email), "status": "failed", "reason": e.message})
                continue

            summary.success += 1
            summary.details.append({"email": str(invitee.email), "status": "invited", "url": result.url})

        logger.info(f"Batch invitation: {summary.success} invited, {summary.failed} failed")
        return summary

    # -----------------------------------------------------
    # Lookup
    # -----------------------------------------------------
    def load(self, token: str) -> dict:
        try:
            result = (
                self.client.table("invitations")
                .select("*")
                .eq("id", token)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, "Failed to load invitation")

        if not result.data:
            raise NotFound("Invitation not found")
        return result.data[0]

    def expire_if_due(self, invitation: dict) -> dict:
        """Mark a PENDING invitation EXPIRED once it is read after expires_at."""
        if invitation.get("status") != InvitationStatus.PENDING.value:
            return invitation
        if self.clock() <= parse_timestamp(invitation["expires_at"]):
            return invitation

        try:
            (
                self.client.table("invitations")
                .update({"status": InvitationStatus.EXPIRED.value})
                .eq("id", invitation["id"])
                .eq("status", InvitationStatus.PENDING.value)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Could not mark invitation for {invitation.get('email')} expired: {e}")

        logger.info(f"Invitation for {invitation.get('email')} expired")
        return {**invitation, "status": InvitationStatus.EXPIRED.value}

    def lookup(self, token: str) -> InvitationView:
        invitation = self.expire_if_due(self.load(token))
        return InvitationView(
            email=invitation["email"],
            name=invitation.get("name"),
            role=invitation["role"],
            sites=invitation.get("sites") or [],
            status=invitation["status"],
            expires_at=parse_timestamp(invitation["expires_at"]),
        )

    # -----------------------------------------------------
    # Accept
    # -----------------------------------------------------
    def _set_status(self, token: str, status: str, expected: str) -> List[dict]:
        result = (
            self.client.table("invitations")
            .update({"status": status})
            .eq("id", token)
            .eq("status", expected)
            .execute()
        )
        return result.data or []

    def _release_claim(self, token: str):
        try:
            self._set_status(token, InvitationStatus.PENDING.value, InvitationStatus.ACCEPTED.value)
        except Exception as e:
            logger.error(f"Could not release invitation claim {token[:8]}…: {e}")

    def accept(self, token: str, password: str) -> UserProfile:
        invitation = self.expire_if_due(self.load(token))
        status = invitation.get("status")

        if status == InvitationStatus.ACCEPTED.value:
            raise InvitationAlreadyUsed("This invitation has already been used")
        if status != InvitationStatus.PENDING.value:
            raise Expired("This invitation has expired")

        # Claim first; only one caller can move the row out of PENDING.
        try:
            claimed = self._set_status(token, InvitationStatus.ACCEPTED.value, InvitationStatus.PENDING.value)
        except Exception as e:
            supabase_error(e, "Failed to claim invitation")
        if not claimed:
            raise InvitationAlreadyUsed("This invitation has already been used")

        email = invitation["email"]
        try:
            created = self.client.auth.admin.create_user({
                "email": email,
                "password": password,
                "email_confirm": True,
            })
            user_id = created.user.id
        except Exception as e:
            self._release_claim(token)
            detail = extract_supabase_error(e)
            logger.error(f"Auth user creation failed for {email}: {detail}")
            if "already" in detail.lower():
                raise Conflict(f"An account for {email} already exists")
            raise StoreUnavailable(f"Could not create the account: {detail}") from e

        now = self.clock()
        profile = {
            "id": user_id,
            "email": email,
            "role": invitation["role"],
            "sites": invitation.get("sites") or [],
            "name": invitation.get("name"),
            "employee_id": invitation.get("employee_id"),
            "status": UserStatus.ACTIVE.value,
            "created_from_invitation": True,
            "accepted_at": now.isoformat(),
            "created_at": now.isoformat(),
        }

        try:
            self.client.table("users").insert(profile).execute()
        except Exception as e:
            try:
                self.client.auth.admin.delete_user(user_id)
            except Exception as cleanup_error:
                logger.error(f"Could not remove auth user {user_id} after failed provisioning: {cleanup_error}")
            self._release_claim(token)
            supabase_error(e, f"Failed to create profile for {email}")

        try:
            (
                self.client.table("invitations")
                .update({"accepted_by": user_id, "accepted_at": now.isoformat()})
                .eq("id", token)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Invitation {token[:8]}… accepted but audit fields not stored: {e}")

        logger.info(f"Invitation accepted: {email} provisioned as {invitation['role']} ({user_id})")
        return UserProfile(**profile)
