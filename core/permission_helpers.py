# core/permission_helpers.py

"""
Permission resolution.

A decision is made by walking an ordered chain of policy layers; each
layer either answers (True/False) or abstains (None). The first answer
wins:

    AdminBypass → UserOverride → SiteRolePolicy → DefaultPolicy

Resolution is read-only and fails closed: a missing site, malformed
policy data or a store error all resolve to False.
"""

from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from core.errors import PermissionDenied
from core.logging_config import logger
from core.permissions import default_roles
from core.policy_store import PolicyStore
from models.enums import MODULE_ACTIONS, Role
from models.site import SitePolicy


class PermissionQuery(NamedTuple):
    site_id: str
    user_id: Optional[str]
    role: str
    module: str
    action: str


# -----------------------------------------------------
# Policy layers
# -----------------------------------------------------
class PolicyLayer:
    name = "layer"
    needs_site = True

    def decide(self, query: PermissionQuery, policy: Optional[SitePolicy]) -> Optional[bool]:
        raise NotImplementedError


class AdminBypass(PolicyLayer):
    name = "admin_bypass"
    needs_site = False

    def decide(self, query, policy):
        if query.role == Role.ADMIN.value:
            return True
        return None


class UserOverride(PolicyLayer):
    """Per-user boolean; grants or revokes regardless of role."""

    name = "user_override"

    def decide(self, query, policy):
        if not query.user_id or not isinstance(policy.user_overrides, dict):
            return None
        per_user = policy.user_overrides.get(query.user_id)
        if not isinstance(per_user, dict):
            return None
        per_module = per_user.get(query.module)
        if not isinstance(per_module, dict):
            return None
        value = per_module.get(query.action)
        if isinstance(value, bool):
            return value
        return None


class SiteRolePolicy(PolicyLayer):
    name = "site_role_settings"

    def decide(self, query, policy):
        roles = _site_roles(policy, query.module, query.action)
        if roles is None:
            return None
        return query.role in roles


class DefaultPolicy(PolicyLayer):
    name = "default"

    def decide(self, query, policy):
        if query.module not in MODULE_ACTIONS:
            logger.warning(f"Unknown permission module '{query.module}' — denying")
        elif query.action not in MODULE_ACTIONS[query.module]:
            logger.warning(f"Unknown action '{query.action}' for module '{query.module}' — denying")
        return query.role in default_roles(query.module, query.action)


DEFAULT_CHAIN: Tuple[PolicyLayer, ...] = (
    AdminBypass(),
    UserOverride(),
    SiteRolePolicy(),
    DefaultPolicy(),
)


def _site_roles(policy: Optional[SitePolicy], module: str, action: str) -> Optional[List[str]]:
    if policy is None or not isinstance(policy.role_settings, dict):
        return None
    per_module = policy.role_settings.get(module)
    if not isinstance(per_module, dict):
        return None
    roles = per_module.get(action)
    if not isinstance(roles, list):
        return None
    return [str(r) for r in roles]


# -----------------------------------------------------
# Resolver
# -----------------------------------------------------
class PermissionResolver:
    def __init__(self, policy_store: PolicyStore, layers: Optional[Sequence[PolicyLayer]] = None):
        self.policy_store = policy_store
        self.layers = tuple(layers) if layers is not None else DEFAULT_CHAIN

    def explain(
        self,
        site_id: str,
        user_id: Optional[str],
        role: str,
        module: str,
        action: str,
    ) -> Tuple[bool, str]:
        """
        Resolve and report which layer decided.
        Never raises.
        """
        query = PermissionQuery(site_id, user_id, str(role), str(module), str(action))
        policy = None
        policy_loaded = False

        try:
            for layer in self.layers:
                if layer.needs_site and not policy_loaded:
                    policy = self.policy_store.get_site_policy(site_id)
                    policy_loaded = True
                    if policy is None:
                        logger.warning(f"Permission check against unknown site {site_id} — denying")
                        return False, "site_not_found"

                decision = layer.decide(query, policy)
                if decision is not None:
                    return decision, layer.name
        except Exception as e:
            logger.warning(f"Permission check error [{module}:{action}] at site {site_id}: {e}")
            return False, "lookup_failed"

        return False, "no_layer"

    def resolve(
        self,
        site_id: str,
        user_id: Optional[str],
        role: str,
        module: str,
        action: str,
    ) -> bool:
        allowed, _ = self.explain(site_id, user_id, role, module, action)
        return allowed

    def require(
        self,
        site_id: str,
        user_id: Optional[str],
        role: str,
        module: str,
        action: str,
    ):
        """Raise PermissionDenied naming the role/module/action when not allowed."""
        allowed, decided_by = self.explain(site_id, user_id, role, module, action)
        if not allowed:
            logger.info(
                f"Denied {module}.{action} for user {user_id} (role {role}) "
                f"at site {site_id} [{decided_by}]"
            )
            if decided_by == "site_not_found":
                raise PermissionDenied(
                    f"Permission denied: site {site_id} does not exist",
                    role=str(role), module=str(module), action=str(action), site_id=site_id,
                )
            if decided_by == "user_override":
                raise PermissionDenied(
                    f"Permission denied: '{module}.{action}' is revoked for this user "
                    f"at site {site_id}",
                    role=str(role), module=str(module), action=str(action), site_id=site_id,
                )
            raise PermissionDenied(role=str(role), module=str(module), action=str(action), site_id=site_id)

    def effective_permissions(self, site_id: str, user_id: Optional[str], role: str) -> Dict[str, Dict[str, bool]]:
        """Every (module, action) decision for one user at one site."""
        return {
            str(module): {
                action: self.resolve(site_id, user_id, role, str(module), action)
                for action in actions
            }
            for module, actions in MODULE_ACTIONS.items()
        }

    def responsible_roles(self, site_id: str, module: str, action: str) -> List[str]:
        """
        Roles granted (module, action) at a site by role policy
        (roleSettings, else defaults). Used to address notifications.
        """
        try:
            policy = self.policy_store.get_site_policy(site_id)
        except Exception as e:
            logger.warning(f"Could not load policy of site {site_id}: {e}")
            policy = None

        roles = _site_roles(policy, str(module), str(action))
        if roles is None:
            roles = default_roles(str(module), str(action))
        return roles
