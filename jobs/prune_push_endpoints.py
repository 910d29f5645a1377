# jobs/prune_push_endpoints.py

from core.supabase_client import get_supabase_client
from core.notifications import PushRegistry
from core.logging_config import logger


def run(client=None) -> int:
    """
    CLI entry point for the push endpoint cleanup.
    Deletes endpoints the push gateway reported as unregistered.
    """
    client = client or get_supabase_client()
    if not client:
        raise RuntimeError("Supabase not configured")

    removed = PushRegistry(client).prune_invalid()
    logger.info(f"Push endpoint cleanup finished: {removed} removed")
    return removed


if __name__ == "__main__":
    run()
