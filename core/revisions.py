# core/revisions.py

"""
Revision families.

Documents sharing (site_id, document_number) form a family. Exactly one
member carries is_latest = true. A new revision is attached through the
`attach_revision` Postgres function (database/functions.sql), which flips
the predecessor's flag and inserts the new row in one transaction, after
checking that the predecessor is still the latest (compare-and-swap).
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from supabase import Client

from core.errors import Conflict, extract_supabase_error, supabase_error
from core.logging_config import logger


STALE_LATEST_MARKER = "stale_latest"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _created_key(row: dict):
    return (row.get("created_at") or "", row.get("id") or "")


class RevisionChain:
    def __init__(self, client: Client, table: str, max_attempts: int = 3):
        self.client = client
        self.table = table
        self.max_attempts = max_attempts

    # -----------------------------------------------------
    # Family reads
    # -----------------------------------------------------
    def family(self, site_id: str, document_number: str) -> List[dict]:
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .eq("site_id", site_id)
                .eq("document_number", document_number)
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to load revision family {document_number}")
        return result.data or []

    def latest(self, site_id: str, document_number: str) -> Optional[dict]:
        rows = self.backfill_family(self.family(site_id, document_number))
        return _latest_of(rows)

    # -----------------------------------------------------
    # Legacy backfill
    # -----------------------------------------------------
    def backfill_family(self, rows: List[dict]) -> List[dict]:
        """
        Give legacy rows (no revision_number) their revision fields.

        Legacy rows become revision 0; the newest legacy row is latest
        unless a numbered row already is. Each update is conditional on
        revision_number still being null, so concurrent backfills of the
        same family write the same values and never double-apply.
        """
        legacy = sorted(
            (r for r in rows if r.get("revision_number") is None),
            key=_created_key,
        )
        if not legacy:
            return rows

        numbered_latest = any(
            r.get("is_latest") and r.get("revision_number") is not None for r in rows
        )

        for index, row in enumerate(legacy):
            is_latest = not numbered_latest and index == len(legacy) - 1
            try:
                (
                    self.client.table(self.table)
                    .update({"revision_number": 0, "is_latest": is_latest})
                    .eq("id", row["id"])
                    .is_("revision_number", "null")
                    .execute()
                )
            except Exception as e:
                supabase_error(e, f"Failed to backfill revision fields of {row.get('id')}")

            row["revision_number"] = 0
            row["is_latest"] = is_latest
            logger.info(f"Backfilled legacy document {row['id']} as revision 0 (latest={is_latest})")

        return rows

    def backfill_collection(self) -> Dict[str, str]:
        """
        One-off migration over the whole table. Returns id → UPDATED for
        every row that was missing revision fields.
        """
        try:
            result = (
                self.client.table(self.table)
                .select("*")
                .is_("revision_number", "null")
                .execute()
            )
        except Exception as e:
            supabase_error(e, f"Failed to scan {self.table} for legacy rows")

        report: Dict[str, str] = {}
        families = {(r.get("site_id"), r.get("document_number")) for r in (result.data or [])}
        for site_id, document_number in sorted(families, key=lambda f: (str(f[0]), str(f[1]))):
            rows = self.family(site_id, document_number)
            before = {r["id"] for r in rows if r.get("revision_number") is None}
            self.backfill_family(rows)
            for doc_id in before:
                report[doc_id] = "UPDATED"

        logger.info(f"Revision backfill on {self.table}: {len(report)} row(s) updated")
        return report

    # -----------------------------------------------------
    # Attach
    # -----------------------------------------------------
    def attach_revision(
        self,
        site_id: str,
        document_number: str,
        new_document: dict,
        expected_latest_id: Optional[str] = None,
    ) -> dict:
        """
        Attach `new_document` as the family's new latest revision and return
        the stored row.

        With `expected_latest_id`, the attach only succeeds while that
        document is still the latest; otherwise the family's current latest
        is read and the attach retried up to `max_attempts` times.
        """
        for attempt in range(1, self.max_attempts + 1):
            rows = self.backfill_family(self.family(site_id, document_number))
            predecessor = _latest_of(rows)

            if expected_latest_id and (predecessor is None or predecessor["id"] != expected_latest_id):
                raise Conflict(
                    f"Document {expected_latest_id} is no longer the latest revision of {document_number}"
                )

            if predecessor is not None:
                revision_number = int(predecessor.get("revision_number") or 0) + 1
            elif rows:
                revision_number = max(int(r.get("revision_number") or 0) for r in rows) + 1
            else:
                revision_number = 0

            now = utc_now_iso()
            payload = {
                **new_document,
                "id": new_document.get("id") or str(uuid4()),
                "site_id": site_id,
                "document_number": document_number,
                "revision_number": revision_number,
                "is_latest": True,
                "created_at": new_document.get("created_at") or now,
                "updated_at": now,
            }

            try:
                result = self.client.rpc(
                    "attach_revision",
                    {
                        "p_table": self.table,
                        "p_expected_latest_id": predecessor["id"] if predecessor else None,
                        "p_document": payload,
                    },
                ).execute()
            except Exception as e:
                detail = extract_supabase_error(e)
                if STALE_LATEST_MARKER in detail:
                    if expected_latest_id:
                        raise Conflict(
                            f"Document {expected_latest_id} was superseded while attaching a revision"
                        )
                    logger.warning(
                        f"Revision race on {document_number} (attempt {attempt}/{self.max_attempts})"
                    )
                    continue
                supabase_error(e, f"Failed to attach revision to {document_number}")

            stored = result.data if isinstance(result.data, dict) else payload
            logger.info(
                f"Attached revision {revision_number} to {self.table}:{site_id}/{document_number}"
            )
            return stored

        raise Conflict(
            f"Could not attach a revision to {document_number}: "
            f"family kept changing after {self.max_attempts} attempts"
        )


def _latest_of(rows: List[dict]) -> Optional[dict]:
    latest = [r for r in rows if r.get("is_latest")]
    if not latest:
        return None
    return max(latest, key=lambda r: int(r.get("revision_number") or 0))
