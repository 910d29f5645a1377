# core/workflow.py

"""
Document workflow state machines (RFA and Work Request).

Each document type is described by a WorkflowDefinition: for every
non-final status, the permission action that gates moves out of it and
the set of legal next statuses. Definitions are checked for completeness
when the module is imported.

Usage:
    engine = WorkflowEngine(RFA_WORKFLOW, resolver, client)
    result = engine.transition(doc_id, actor, "APPROVED", "looks good")
"""

from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

from supabase import Client

from core.errors import (
    Conflict,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
    supabase_error,
)
from core.logging_config import logger
from core.permission_helpers import PermissionResolver
from models.document import WorkflowStep
from models.enums import (
    MODULE_ACTIONS,
    Module,
    RfaAction,
    RfaStatus,
    Role,
    WorkRequestAction,
    WorkRequestStatus,
)
from models.notification import NotificationRequest


class Actor(NamedTuple):
    user_id: str
    role: str
    name: Optional[str] = None
    sites: Tuple[str, ...] = ()


def is_admin(actor: Actor) -> bool:
    return str(actor.role) == Role.ADMIN.value


def require_site_member(actor: Actor, site_id: Optional[str]):
    """Admins act at every site; everyone else only within their own sites."""
    if is_admin(actor) or site_id in (actor.sites or ()):
        return
    raise PermissionDenied(
        f"Permission denied: user {actor.user_id} is not a member of site {site_id}",
        role=str(actor.role), site_id=site_id,
    )


class WorkflowDefinition:
    def __init__(
        self,
        *,
        module: Module,
        table: str,
        statuses: List[str],
        initial_status: str,
        revision_entry_status: str,
        transitions: Dict[str, Tuple[str, FrozenSet[str]]],
        terminal: FrozenSet[str],
        revision_required: FrozenSet[str],
        step_actions: Dict[str, str],
        comment_required: FrozenSet[str] = frozenset(),
        url_prefix: str = "",
    ):
        self.module = module
        self.table = table
        self.statuses = list(statuses)
        self.initial_status = initial_status
        self.revision_entry_status = revision_entry_status
        self.transitions = transitions
        self.terminal = terminal
        self.revision_required = revision_required
        self.step_actions = step_actions
        self.comment_required = comment_required
        self.url_prefix = url_prefix
        self.validate()

    def validate(self):
        """
        Every status is exactly one of: has outgoing transitions, terminal,
        or revision-required. Targets and gating actions must be known.
        """
        known = set(self.statuses)
        actions = set(MODULE_ACTIONS[self.module])

        for status in self.statuses:
            kinds = [
                status in self.transitions,
                status in self.terminal,
                status in self.revision_required,
            ]
            if sum(kinds) != 1:
                raise ValueError(f"{self.module}: status {status} must have exactly one role in the table")

        for source, (action, targets) in self.transitions.items():
            if action not in actions:
                raise ValueError(f"{self.module}: unknown gating action '{action}' for {source}")
            unknown = set(targets) - known
            if unknown:
                raise ValueError(f"{self.module}: {source} leads to unknown statuses {sorted(unknown)}")
            for target in targets:
                if target not in self.step_actions:
                    raise ValueError(f"{self.module}: no step action named for target {target}")

        for status in (self.initial_status, self.revision_entry_status):
            if status not in known:
                raise ValueError(f"{self.module}: unknown entry status {status}")

    def targets_from(self, status: str) -> FrozenSet[str]:
        entry = self.transitions.get(status)
        return entry[1] if entry else frozenset()

    def gating_action(self, status: str) -> Optional[str]:
        entry = self.transitions.get(status)
        return entry[0] if entry else None

    def is_final(self, status: str) -> bool:
        return status in self.terminal or status in self.revision_required


# -----------------------------------------------------
# RFA
# -----------------------------------------------------
RFA_WORKFLOW = WorkflowDefinition(
    module=Module.RFA,
    table="rfa_documents",
    statuses=RfaStatus.list(),
    initial_status=RfaStatus.PENDING_REVIEW.value,
    revision_entry_status=RfaStatus.PENDING_REVIEW.value,
    transitions={
        RfaStatus.PENDING_REVIEW.value: (
            RfaAction.REVIEW.value,
            frozenset({
                RfaStatus.PENDING_CM_APPROVAL.value,
                RfaStatus.REVISION_REQUIRED.value,
            }),
        ),
        RfaStatus.PENDING_CM_APPROVAL.value: (
            RfaAction.APPROVE.value,
            frozenset({
                RfaStatus.APPROVED.value,
                RfaStatus.APPROVED_WITH_COMMENTS.value,
                RfaStatus.APPROVED_REVISION_REQUIRED.value,
                RfaStatus.REJECTED.value,
                RfaStatus.REVISION_REQUIRED.value,
            }),
        ),
    },
    terminal=frozenset({
        RfaStatus.APPROVED.value,
        RfaStatus.APPROVED_WITH_COMMENTS.value,
        RfaStatus.REJECTED.value,
    }),
    revision_required=frozenset({
        RfaStatus.REVISION_REQUIRED.value,
        RfaStatus.APPROVED_REVISION_REQUIRED.value,
    }),
    step_actions={
        RfaStatus.PENDING_CM_APPROVAL.value: "FORWARD_TO_CM",
        RfaStatus.REVISION_REQUIRED.value: "REQUEST_REVISION",
        RfaStatus.APPROVED.value: "APPROVE",
        RfaStatus.APPROVED_WITH_COMMENTS.value: "APPROVE_WITH_COMMENTS",
        RfaStatus.APPROVED_REVISION_REQUIRED.value: "APPROVE_REVISION_REQUIRED",
        RfaStatus.REJECTED.value: "REJECT",
    },
    url_prefix="/rfa",
)


# -----------------------------------------------------
# Work Request
# -----------------------------------------------------
WORK_REQUEST_WORKFLOW = WorkflowDefinition(
    module=Module.WORK_REQUEST,
    table="work_requests",
    statuses=WorkRequestStatus.list(),
    initial_status=WorkRequestStatus.DRAFT.value,
    revision_entry_status=WorkRequestStatus.PENDING_ACCEPTANCE.value,
    transitions={
        WorkRequestStatus.DRAFT.value: (
            WorkRequestAction.APPROVE_DRAFT.value,
            frozenset({
                WorkRequestStatus.PENDING_BIM.value,
                WorkRequestStatus.REJECTED_BY_PM.value,
            }),
        ),
        WorkRequestStatus.PENDING_BIM.value: (
            WorkRequestAction.EXECUTE.value,
            frozenset({WorkRequestStatus.IN_PROGRESS.value}),
        ),
        WorkRequestStatus.IN_PROGRESS.value: (
            WorkRequestAction.EXECUTE.value,
            frozenset({WorkRequestStatus.PENDING_ACCEPTANCE.value}),
        ),
        WorkRequestStatus.PENDING_ACCEPTANCE.value: (
            WorkRequestAction.INSPECT.value,
            frozenset({
                WorkRequestStatus.COMPLETED.value,
                WorkRequestStatus.REVISION_REQUESTED.value,
            }),
        ),
    },
    terminal=frozenset({
        WorkRequestStatus.COMPLETED.value,
        WorkRequestStatus.REJECTED_BY_PM.value,
    }),
    revision_required=frozenset({WorkRequestStatus.REVISION_REQUESTED.value}),
    step_actions={
        WorkRequestStatus.PENDING_BIM.value: "APPROVE_DRAFT",
        WorkRequestStatus.REJECTED_BY_PM.value: "REJECT_DRAFT",
        WorkRequestStatus.IN_PROGRESS.value: "ACCEPT_WORK",
        WorkRequestStatus.PENDING_ACCEPTANCE.value: "SUBMIT_WORK",
        WorkRequestStatus.COMPLETED.value: "COMPLETE",
        WorkRequestStatus.REVISION_REQUESTED.value: "REQUEST_REVISION",
    },
    comment_required=frozenset({WorkRequestStatus.REJECTED_BY_PM.value}),
    url_prefix="/work-request",
)


WORKFLOWS = {
    Module.RFA: RFA_WORKFLOW,
    Module.WORK_REQUEST: WORK_REQUEST_WORKFLOW,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TransitionOutcome(NamedTuple):
    document: dict
    step: WorkflowStep
    notification: Optional[NotificationRequest]
    previous_status: str = ""


class WorkflowEngine:
    def __init__(
        self,
        definition: WorkflowDefinition,
        resolver: PermissionResolver,
        client: Optional[Client] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.definition = definition
        self.resolver = resolver
        self.client = client
        self.clock = clock

    # -----------------------------------------------------
    # Steps
    # -----------------------------------------------------
    def make_step(self, action: str, status: str, actor: Actor, comments: str = "", files=None) -> WorkflowStep:
        return WorkflowStep(
            action=action,
            status=status,
            user_id=actor.user_id,
            user_name=actor.name,
            role=str(actor.role),
            timestamp=self.clock().isoformat(),
            comments=comments or "",
            files=list(files or []),
        )

    # -----------------------------------------------------
    # Pure transition
    # -----------------------------------------------------
    def apply_transition(
        self,
        document: dict,
        actor: Actor,
        target_status: str,
        comments: str = "",
        files=None,
    ) -> TransitionOutcome:
        """
        Validate and compute one transition without touching the store.
        Returns the new document, the appended step and the notification
        request for the entered state. The input document is not modified.
        """
        current = document.get("status")
        target = str(target_status)
        allowed = self.definition.targets_from(current)

        action = self.definition.gating_action(current)
        if action is not None:
            self.resolver.require(
                document.get("site_id"), actor.user_id, actor.role, str(self.definition.module), action
            )

        if target not in allowed:
            raise InvalidTransition(current, target, allowed)

        if target in self.definition.comment_required and not (comments or "").strip():
            raise ValidationFailed(f"A comment is required to move to {target}")

        step = self.make_step(self.definition.step_actions[target], target, actor, comments, files)

        new_document = dict(document)
        new_document["status"] = target
        new_document["workflow"] = list(document.get("workflow") or []) + [step.model_dump()]
        new_document["updated_at"] = step.timestamp

        return TransitionOutcome(new_document, step, self.notification_for(new_document, actor), current)

    # -----------------------------------------------------
    # Notifications
    # -----------------------------------------------------
    def notification_for(self, document: dict, actor: Actor) -> Optional[NotificationRequest]:
        """
        Who acts next: the creator when the revision is final, otherwise
        the roles holding the gating action of the new status.
        """
        status = document.get("status")
        site_id = document.get("site_id")
        number = document.get("document_number", "")
        url = f"{self.definition.url_prefix}/{document.get('id')}"
        title = f"{number} → {status}"

        if self.definition.is_final(status):
            creator = document.get("created_by")
            if not creator or creator == actor.user_id:
                return None
            body = (
                f"{number} requires a new revision"
                if status in self.definition.revision_required
                else f"{number} was closed as {status}"
            )
            return NotificationRequest(
                site_id=site_id, title=title, body=body, url=url, recipient_user_ids=[creator]
            )

        action = self.definition.gating_action(status)
        roles = self.resolver.responsible_roles(site_id, str(self.definition.module), action)
        if not roles:
            return None
        return NotificationRequest(
            site_id=site_id,
            title=title,
            body=f"{number} is waiting for {action}",
            url=url,
            recipient_roles=roles,
        )

    # -----------------------------------------------------
    # Persisted transition
    # -----------------------------------------------------
    def load(self, document_id: str) -> dict:
        try:
            result = (
                self.client.table(self.definition.table)
                .select("*")
                .eq("id", document_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to load {self.definition.table} {document_id}")

        if not result.data:
            raise NotFound(f"Document {document_id} not found")
        return result.data[0]

    def transition(
        self,
        document_id: str,
        actor: Actor,
        target_status: str,
        comments: str = "",
        expected_status: Optional[str] = None,
        files=None,
    ) -> TransitionOutcome:
        """
        Re-read the document, check the actor belongs to its site, apply the
        transition and store it with a conditional update on the status that
        was read. A concurrent change
        makes the update match nothing and fails with Conflict.
        """
        document = self.load(document_id)
        require_site_member(actor, document.get("site_id"))
        current = document.get("status")

        if expected_status and current != expected_status:
            raise Conflict(
                f"Document {document_id} is now '{current}', not '{expected_status}'; reload and retry"
            )
        if document.get("is_latest") is False:
            raise Conflict(f"Document {document_id} has been superseded by a newer revision")

        outcome = self.apply_transition(document, actor, target_status, comments, files)

        try:
            result = (
                self.client.table(self.definition.table)
                .update({
                    "status": outcome.document["status"],
                    "workflow": outcome.document["workflow"],
                    "updated_at": outcome.document["updated_at"],
                })
                .eq("id", document_id)
                .eq("status", current)
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to store transition of {document_id}")

        if not result.data:
            raise Conflict(f"Document {document_id} changed while it was being updated; reload and retry")

        logger.info(
            f"{self.definition.module} {document_id}: {current} → {outcome.document['status']} "
            f"by {actor.user_id} ({actor.role})"
        )
        return outcome
