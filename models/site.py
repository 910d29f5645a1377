from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from models.enums import Role, MODULE_ACTIONS


# ======================================================
# STORED POLICY (raw, tolerant)
# ======================================================

class SitePolicy(BaseModel):
    """
    Authorization data of one site as stored.

    Both maps stay untyped: malformed entries are skipped by the resolver
    instead of failing the whole lookup.
    """

    site_id: str
    role_settings: Any = None       # module → action → [role]
    user_overrides: Any = None      # user_id → module → action → bool


class SiteRead(BaseModel):
    id: str
    name: str
    short_name: Optional[str] = None
    description: Optional[str] = None


# ======================================================
# ADMIN WRITES (validated)
# ======================================================

def _check_module_action(module: str, action: str):
    if module not in MODULE_ACTIONS:
        raise ValueError(f"Unknown module '{module}'")
    if action not in MODULE_ACTIONS[module]:
        raise ValueError(f"Unknown action '{action}' for module '{module}'")


class UserOverridesUpdate(BaseModel):
    """Replaces one user's override map at one site."""

    overrides: Dict[str, Dict[str, bool]] = Field(
        ...,
        description="module → action → allowed. Omit an action to defer to role policy.",
        json_schema_extra={"example": {"RFA": {"approve": True}}},
    )

    @field_validator("overrides")
    def validate_keys(cls, v):
        for module, actions in v.items():
            for action in actions:
                _check_module_action(module, action)
        return v


class RoleSettingsUpdate(BaseModel):
    """Replaces a site's role policy."""

    role_settings: Dict[str, Dict[str, List[Role]]] = Field(
        ...,
        description="module → action → roles allowed",
        json_schema_extra={"example": {"RFA": {"approve": ["CM", "PM"]}}},
    )

    @field_validator("role_settings")
    def validate_keys(cls, v):
        for module, actions in v.items():
            for action in actions:
                _check_module_action(module, action)
        return v

    def as_stored(self) -> Dict[str, Dict[str, List[str]]]:
        return {
            module: {action: [str(r) for r in roles] for action, roles in actions.items()}
            for module, actions in self.role_settings.items()
        }
