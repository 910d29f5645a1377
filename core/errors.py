# core/errors.py

from typing import Iterable, Optional


# -----------------------------------------------------
# Error taxonomy
# -----------------------------------------------------
class DocControlError(Exception):
    """
    Base class for every failure the core surfaces to a caller.
    Each subclass carries the HTTP status the API layer answers with.
    """

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class Unauthorized(DocControlError):
    status_code = 401


class PermissionDenied(DocControlError):
    status_code = 403

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        role: Optional[str] = None,
        module: Optional[str] = None,
        action: Optional[str] = None,
        site_id: Optional[str] = None,
    ):
        if message is None:
            message = (
                f"Permission denied: role '{role}' is not allowed "
                f"'{module}.{action}' at site {site_id}"
            )
        super().__init__(message)
        self.role = role
        self.module = module
        self.action = action
        self.site_id = site_id


class NotFound(DocControlError):
    status_code = 404


class Conflict(DocControlError):
    status_code = 409


class Expired(DocControlError):
    status_code = 410


class InvitationAlreadyUsed(Expired):
    """Raised when a consumed invitation token is presented again."""


class InvalidTransition(DocControlError):
    status_code = 422

    def __init__(
        self,
        current: str,
        target: str,
        allowed: Iterable[str] = (),
        reason: Optional[str] = None,
    ):
        allowed = sorted(str(s) for s in allowed)
        if reason is None and allowed:
            reason = f"allowed targets: {', '.join(allowed)}"
        elif reason is None:
            reason = f"'{current}' has no outgoing transitions"
        super().__init__(f"Cannot move from '{current}' to '{target}' ({reason})")
        self.current_status = current
        self.target_status = target
        self.allowed = allowed


class ValidationFailed(DocControlError):
    status_code = 400


class StoreUnavailable(DocControlError):
    status_code = 503


# -----------------------------------------------------
# Supabase error normalisation
# -----------------------------------------------------
def extract_supabase_error(error: Exception) -> str:
    """
    Safely extract readable details from Supabase Python client errors.
    Handles:
      • PostgREST errors
      • GoTrue (Auth) errors
      • Generic Python exceptions
    """

    # Case 1 — Supabase Auth / GoTrue errors
    if hasattr(error, "message"):
        try:
            return str(error.message)
        except Exception:
            pass

    # Case 2 — Supabase errors with args (common)
    if hasattr(error, "args") and error.args:
        try:
            return str(error.args[0])
        except Exception:
            pass

    # Case 3 — Plain string fallback
    try:
        return str(error)
    except Exception:
        return "Unknown Supabase error"


def supabase_error(error: Exception, message: str = "Document store error"):
    """
    Convert Supabase / database errors into StoreUnavailable.
    Always raises — caller should wrap with try/except.
    """
    from core.logging_config import logger

    detail = extract_supabase_error(error)
    logger.error(f"{message}: {detail}")

    raise StoreUnavailable(f"{message}: {detail}") from error


def is_unique_violation(error: Exception) -> bool:
    """True when the store rejected a write because of a unique constraint."""
    detail = extract_supabase_error(error).lower()
    return "duplicate" in detail or "unique" in detail or "23505" in detail
