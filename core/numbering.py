# core/numbering.py
# Per-site document number allocation backed by the `counters` table.

from supabase import Client

from core.errors import Conflict, is_unique_violation, supabase_error
from core.logging_config import logger
from models.enums import RfaType


RFA_PREFIXES = {
    RfaType.SHOP.value: "RFS",
    RfaType.GEN.value: "RFG",
    RfaType.MAT.value: "RFM",
}


def rfa_number(rfa_type: str, n: int) -> str:
    return f"{RFA_PREFIXES[str(rfa_type)]}-{n:03d}"


def wr_number(short_name: str, n: int) -> str:
    return f"WR-{short_name}-{n:04d}"


class DocumentNumberAllocator:
    """
    Hands out increasing sequence values per (site, key).

    Each step is a conditional update on the value that was read, so two
    concurrent allocations can never receive the same number; the loser
    re-reads and tries again.
    """

    def __init__(self, client: Client, max_attempts: int = 5):
        self.client = client
        self.max_attempts = max_attempts

    def next_value(self, site_id: str, key: str) -> int:
        counter_id = f"{site_id}:{key}"

        for _ in range(self.max_attempts):
            try:
                result = (
                    self.client.table("counters")
                    .select("id, value")
                    .eq("id", counter_id)
                    .limit(1)
                    .execute()
                )
            except Exception as e:
                supabase_error(e, f"Failed to read counter {counter_id}")

            if not result.data:
                try:
                    self.client.table("counters").insert({
                        "id": counter_id,
                        "site_id": site_id,
                        "key": key,
                        "value": 1,
                    }).execute()
                    return 1
                except Exception as e:
                    if is_unique_violation(e):
                        continue
                    supabase_error(e, f"Failed to create counter {counter_id}")

            current = int(result.data[0].get("value") or 0)
            try:
                updated = (
                    self.client.table("counters")
                    .update({"value": current + 1})
                    .eq("id", counter_id)
                    .eq("value", current)
                    .execute()
                )
            except Exception as e:
                supabase_error(e, f"Failed to advance counter {counter_id}")

            if updated.data:
                return current + 1

            logger.warning(f"Counter {counter_id} moved while allocating; retrying")

        raise Conflict(f"Could not allocate a document number for {key} at site {site_id}; try again")

    # -----------------------------------------------------
    # Document numbers
    # -----------------------------------------------------
    def next_rfa_number(self, site_id: str, rfa_type: str) -> str:
        return rfa_number(rfa_type, self.next_value(site_id, f"rfa:{rfa_type}"))

    def next_work_request_number(self, site_id: str, short_name: str) -> str:
        return wr_number(short_name, self.next_value(site_id, "work_request"))
