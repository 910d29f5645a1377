# core/supabase_client.py

from typing import Optional

from supabase import create_client, Client, ClientOptions

from core.config import settings
from core.logging_config import logger


# ============================================================
# Supabase Client Factory (ALWAYS service role)
# ============================================================

def get_supabase_client(timeout_seconds: Optional[int] = None) -> Optional[Client]:
    """
    Creates a Supabase client using the SERVICE ROLE KEY.
    REQUIRED for:
        - auth.admin.create_user / delete_user (invitation acceptance)
        - full read/write on sites, documents and invitations

    Every PostgREST call made through the returned client is bounded by
    `timeout_seconds` (defaults to STORE_TIMEOUT_SECONDS).
    """
    try:
        supabase_url = settings.SUPABASE_URL
        supabase_key = settings.SUPABASE_SERVICE_ROLE_KEY  # MUST be service-role

        if not supabase_url or not supabase_key:
            logger.error("Missing Supabase credentials")
            logger.error(f"   URL: {supabase_url}")
            logger.error(f"   SERVICE ROLE KEY: {'SET' if supabase_key else 'MISSING'}")
            return None

        timeout = timeout_seconds or settings.STORE_TIMEOUT_SECONDS
        options = ClientOptions(postgrest_client_timeout=timeout)

        return create_client(supabase_url, supabase_key, options=options)

    except Exception as e:
        logger.error(f"Supabase Init Error: {e}", exc_info=True)
        return None


# ============================================================
# Ping Supabase for health checks
# ============================================================

def ping_supabase(client: Optional[Client] = None) -> dict:
    """
    Simple connectivity check.
    Does NOT query auth tables.
    """
    try:
        client = client or get_supabase_client()
        if client is None:
            return {"service": "Supabase", "status": "not_configured"}

        tables = ["sites", "rfa_documents", "work_requests", "invitations"]
        results = {}

        for t in tables:
            try:
                res = client.table(t).select("id").limit(1).execute()
                results[t] = {
                    "status": "ok",
                    "rows_found": len(res.data or [])
                }
            except Exception as err:
                results[t] = {"status": "error", "detail": str(err)}

        return {
            "service": "Supabase",
            "status": "ok",
            "tables": results,
        }

    except Exception as e:
        logger.error(f"Supabase ping failed: {e}")
        return {"service": "Supabase", "status": "error", "detail": str(e)}
