# core/documents.py

"""
Document lifecycle operations that sit around the workflow engine:
creation of the first revision, resubmission after a revision request,
and batch transitions.
"""

from typing import Callable, List, NamedTuple, Optional

from supabase import Client

from core.errors import (
    DocControlError,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StoreUnavailable,
    ValidationFailed,
    supabase_error,
)
from core.logging_config import logger
from core.numbering import DocumentNumberAllocator
from core.permission_helpers import PermissionResolver
from core.revisions import RevisionChain
from core.s3_client import BlobStaging
from core.workflow import (
    RFA_WORKFLOW,
    WORK_REQUEST_WORKFLOW,
    Actor,
    TransitionOutcome,
    WorkflowDefinition,
    WorkflowEngine,
    is_admin,
    require_site_member,
    utc_now,
)
from models.document import (
    BatchTransitionResult,
    RevisionCreate,
    RfaCreate,
    WorkRequestCreate,
)
from models.enums import Module, RfaAction, WorkRequestAction
from models.notification import NotificationRequest


RFA_CREATE_ACTIONS = {
    "RFA-SHOP": RfaAction.CREATE_SHOP.value,
    "RFA-GEN": RfaAction.CREATE_GEN.value,
    "RFA-MAT": RfaAction.CREATE_MAT.value,
}

BLOB_FOLDERS = {
    Module.RFA: "rfa",
    Module.WORK_REQUEST: "work-requests",
}

# Fields that belong to one revision and are never copied to the next.
REVISION_OWN_FIELDS = {
    "id", "status", "workflow", "files", "revision_number", "is_latest",
    "created_at", "updated_at", "parent_id", "revision_history",
}


class DocumentOutcome(NamedTuple):
    document: dict
    notification: Optional[NotificationRequest]


class DocumentService:
    def __init__(
        self,
        client: Client,
        resolver: PermissionResolver,
        allocator: Optional[DocumentNumberAllocator] = None,
        blobs: Optional[BlobStaging] = None,
        clock: Callable = utc_now,
    ):
        self.client = client
        self.resolver = resolver
        self.allocator = allocator or DocumentNumberAllocator(client)
        self.blobs = blobs
        self.clock = clock

    def engine(self, definition: WorkflowDefinition) -> WorkflowEngine:
        return WorkflowEngine(definition, self.resolver, self.client, self.clock)

    # -----------------------------------------------------
    # Helpers
    # -----------------------------------------------------
    def load_site(self, site_id: str) -> dict:
        try:
            result = (
                self.client.table("sites")
                .select("id, name, short_name")
                .eq("id", site_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to load site {site_id}")

        if not result.data:
            raise NotFound(f"Site {site_id} not found")
        return result.data[0]

    def require_membership(self, actor: Actor, site_id: str):
        require_site_member(actor, site_id)

    def validate_category(self, site_id: str, category_id: Optional[str], rfa_type: str):
        if not category_id:
            return
        try:
            result = (
                self.client.table("categories")
                .select("*")
                .eq("id", category_id)
                .eq("site_id", site_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to load category {category_id}")

        if not result.data:
            raise ValidationFailed(f"Category {category_id} does not exist at site {site_id}")

        category = result.data[0]
        if not category.get("active", True):
            raise ValidationFailed(f"Category {category.get('category_code')} is inactive")
        if rfa_type not in (category.get("rfa_types") or []):
            raise ValidationFailed(
                f"Category {category.get('category_code')} does not accept {rfa_type} documents"
            )

    def move_files(self, actor: Actor, site_id: str, module: Module, document_number: str, files) -> List[dict]:
        staged = [f.model_dump() if hasattr(f, "model_dump") else dict(f) for f in (files or [])]
        if not staged:
            return []

        if self.blobs is None:
            raise StoreUnavailable("Attachment storage is not configured")

        return self.blobs.move_to_document(
            actor.user_id, site_id, BLOB_FOLDERS[module], document_number, staged
        )

    # -----------------------------------------------------
    # Creation
    # -----------------------------------------------------
    def create_rfa(self, actor: Actor, payload: RfaCreate) -> DocumentOutcome:
        site_id = payload.site_id
        rfa_type = str(payload.rfa_type)

        self.load_site(site_id)
        self.require_membership(actor, site_id)
        self.resolver.require(site_id, actor.user_id, actor.role, Module.RFA.value, RFA_CREATE_ACTIONS[rfa_type])
        self.validate_category(site_id, payload.category_id, rfa_type)

        number = self.allocator.next_rfa_number(site_id, rfa_type)
        files = self.move_files(actor, site_id, Module.RFA, number, payload.files)

        engine = self.engine(RFA_WORKFLOW)
        step = engine.make_step("CREATE", RFA_WORKFLOW.initial_status, actor, "", files)

        document = {
            "rfa_type": rfa_type,
            "title": payload.title.strip(),
            "description": payload.description,
            "category_id": payload.category_id,
            "priority": str(payload.priority),
            "task_data": payload.task_data,
            "status": RFA_WORKFLOW.initial_status,
            "created_by": actor.user_id,
            "files": files,
            "workflow": [step.model_dump()],
            "parent_id": None,
            "revision_history": [],
        }

        stored = RevisionChain(self.client, RFA_WORKFLOW.table).attach_revision(site_id, number, document)
        logger.info(f"RFA {number} created at site {site_id} by {actor.user_id}")
        return DocumentOutcome(stored, engine.notification_for(stored, actor))

    def create_work_request(self, actor: Actor, payload: WorkRequestCreate) -> DocumentOutcome:
        site_id = payload.site_id

        site = self.load_site(site_id)
        self.require_membership(actor, site_id)
        self.resolver.require(
            site_id, actor.user_id, actor.role, Module.WORK_REQUEST.value, WorkRequestAction.CREATE.value
        )

        short_name = site.get("short_name") or site_id[:4].upper()
        number = self.allocator.next_work_request_number(site_id, short_name)
        files = self.move_files(actor, site_id, Module.WORK_REQUEST, number, payload.files)

        engine = self.engine(WORK_REQUEST_WORKFLOW)
        step = engine.make_step("CREATE_DRAFT", WORK_REQUEST_WORKFLOW.initial_status, actor, "", files)

        document = {
            "task_name": payload.task_name.strip(),
            "description": payload.description,
            "due_date": payload.due_date.isoformat(),
            "priority": str(payload.priority),
            "status": WORK_REQUEST_WORKFLOW.initial_status,
            "created_by": actor.user_id,
            "assigned_to": None,
            "files": files,
            "workflow": [step.model_dump()],
            "parent_id": None,
            "revision_history": [],
        }

        stored = RevisionChain(self.client, WORK_REQUEST_WORKFLOW.table).attach_revision(
            site_id, number, document
        )
        logger.info(f"Work request {number} created at site {site_id} by {actor.user_id}")
        return DocumentOutcome(stored, engine.notification_for(stored, actor))

    # -----------------------------------------------------
    # Revisions
    # -----------------------------------------------------
    def submit_revision(
        self,
        definition: WorkflowDefinition,
        document_id: str,
        actor: Actor,
        payload: RevisionCreate,
    ) -> DocumentOutcome:
        """
        Create the next revision of a document whose review asked for one.
        RFAs are revised by their creator; work requests by whoever holds
        WORK_REQUEST.execute at the site.
        The source must still be its family's latest; the new revision
        re-enters the workflow at the definition's revision entry status.
        """
        engine = self.engine(definition)
        source = engine.load(document_id)
        site_id = source.get("site_id")
        status = source.get("status")
        entry = definition.revision_entry_status

        require_site_member(actor, site_id)

        if (
            definition.module == Module.RFA
            and not is_admin(actor)
            and source.get("created_by") != actor.user_id
        ):
            raise PermissionDenied(
                "Permission denied: only the RFA creator or an Admin may submit a revision",
                role=str(actor.role), module=str(definition.module), site_id=site_id,
            )

        if source.get("is_latest") is False:
            raise InvalidTransition(status, entry, reason="a newer revision already exists")
        if status not in definition.revision_required:
            raise InvalidTransition(
                status, entry, reason=f"revisions are only accepted from {', '.join(sorted(definition.revision_required))}"
            )

        if definition.module == Module.RFA:
            action = RFA_CREATE_ACTIONS.get(source.get("rfa_type"), RfaAction.CREATE_GEN.value)
        else:
            action = WorkRequestAction.EXECUTE.value
        self.resolver.require(site_id, actor.user_id, actor.role, str(definition.module), action)

        number = source["document_number"]
        files = self.move_files(actor, site_id, definition.module, number, payload.files)
        step = engine.make_step("CREATE_REVISION", entry, actor, payload.comments, files)

        document = {k: v for k, v in source.items() if k not in REVISION_OWN_FIELDS}
        document.update({
            "status": entry,
            "files": files,
            "workflow": [step.model_dump()],
            "parent_id": source.get("parent_id") or source["id"],
            "revision_history": list(source.get("revision_history") or []) + [source["id"]],
        })

        stored = RevisionChain(self.client, definition.table).attach_revision(
            site_id, number, document, expected_latest_id=source["id"]
        )
        logger.info(
            f"{definition.module} {number}: revision {stored.get('revision_number')} submitted by {actor.user_id}"
        )
        return DocumentOutcome(stored, engine.notification_for(stored, actor))

    # -----------------------------------------------------
    # Batch
    # -----------------------------------------------------
    def batch_transition(
        self,
        definition: WorkflowDefinition,
        ids: List[str],
        actor: Actor,
        target_status: str,
        comments: str = "",
        from_status: Optional[str] = None,
    ):
        """
        Apply one target to many documents. Each document succeeds or
        fails on its own; returns the summary and the successful outcomes.
        """
        engine = self.engine(definition)
        summary = BatchTransitionResult()
        outcomes: List[TransitionOutcome] = []

        for document_id in dict.fromkeys(ids):
            try:
                outcome = engine.transition(
                    document_id, actor, target_status, comments, expected_status=from_status
                )
            except DocControlError as e:
                summary.errors.append({"id": document_id, "error": e.message})
                continue
            summary.updated.append(document_id)
            outcomes.append(outcome)

        logger.info(
            f"Batch {definition.module} → {target_status} by {actor.user_id}: "
            f"{len(summary.updated)} updated, {len(summary.errors)} failed"
        )
        return summary, outcomes

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------
    def get_document(self, definition: WorkflowDefinition, document_id: str, actor: Actor) -> dict:
        document = self.engine(definition).load(document_id)
        self.require_membership(actor, document.get("site_id"))
        return document

    def list_documents(
        self,
        definition: WorkflowDefinition,
        site_id: str,
        actor: Actor,
        status: Optional[str] = None,
        include_superseded: bool = False,
        limit: int = 100,
    ) -> List[dict]:
        self.require_membership(actor, site_id)

        query = self.client.table(definition.table).select("*").eq("site_id", site_id)
        if status:
            query = query.eq("status", status)
        if not include_superseded:
            query = query.eq("is_latest", True)

        try:
            result = query.order("created_at", desc=True).limit(limit).execute()
        except Exception as e:
            supabase_error(e, f"Failed to list {definition.table}")
        return result.data or []

    def history(self, definition: WorkflowDefinition, document_id: str, actor: Actor) -> List[dict]:
        """All revisions of the document's family, oldest first."""
        document = self.get_document(definition, document_id, actor)
        chain = RevisionChain(self.client, definition.table)
        rows = chain.backfill_family(chain.family(document["site_id"], document["document_number"]))
        return sorted(rows, key=lambda r: int(r.get("revision_number") or 0))
