# core/policy_store.py
# Read access to per-site role policy and per-user overrides.

from typing import Optional

from supabase import Client

from core.cache import TTLCache, get_cache
from core.config import settings
from core.errors import NotFound, supabase_error
from core.logging_config import logger
from models.site import SitePolicy


def _policy_key(site_id: str) -> str:
    return f"site_policy:{site_id}"


class PolicyStore:
    """
    Loads `role_settings` / `user_overrides` from the `sites` table.

    Reads go through a short-lived cache; writes (admin only) replace the
    stored maps and invalidate the cached copy for that site.
    """

    def __init__(
        self,
        client: Client,
        cache: Optional[TTLCache] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.client = client
        self.cache = cache if cache is not None else get_cache()
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.POLICY_CACHE_TTL_SECONDS

    # -----------------------------------------------------
    # Reads
    # -----------------------------------------------------
    def get_site_policy(self, site_id: str) -> Optional[SitePolicy]:
        """
        Returns the site's policy, or None when the site does not exist.
        Store errors propagate; the resolver decides what they mean.
        """
        cached = self.cache.get(_policy_key(site_id))
        if cached is not None:
            return cached

        result = (
            self.client.table("sites")
            .select("id, role_settings, user_overrides")
            .eq("id", site_id)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        policy = SitePolicy(
            site_id=row["id"],
            role_settings=row.get("role_settings"),
            user_overrides=row.get("user_overrides"),
        )
        self.cache.set(_policy_key(site_id), policy, self.ttl_seconds)
        return policy

    def invalidate(self, site_id: str):
        self.cache.delete(_policy_key(site_id))

    # -----------------------------------------------------
    # Admin writes
    # -----------------------------------------------------
    def set_user_overrides(self, site_id: str, user_id: str, overrides: dict) -> dict:
        """
        Replace one user's override map at a site. An empty map removes the
        user's entry entirely.
        """
        try:
            result = (
                self.client.table("sites")
                .select("id, user_overrides")
                .eq("id", site_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            supabase_error(e, "Failed to load site overrides")

        if not result.data:
            raise NotFound(f"Site {site_id} not found")

        current = result.data[0].get("user_overrides")
        merged = dict(current) if isinstance(current, dict) else {}
        if overrides:
            merged[user_id] = overrides
        else:
            merged.pop(user_id, None)

        try:
            self.client.table("sites").update({"user_overrides": merged}).eq("id", site_id).execute()
        except Exception as e:
            supabase_error(e, "Failed to save site overrides")

        self.invalidate(site_id)
        logger.info(f"User overrides replaced for user {user_id} at site {site_id}")
        return merged

    def set_role_settings(self, site_id: str, role_settings: dict) -> dict:
        try:
            result = (
                self.client.table("sites")
                .update({"role_settings": role_settings})
                .eq("id", site_id)
                .execute()
            )
        except Exception as e:
            supabase_error(e, "Failed to save role settings")

        if not result.data:
            raise NotFound(f"Site {site_id} not found")

        self.invalidate(site_id)
        logger.info(f"Role settings replaced at site {site_id}")
        return role_settings
