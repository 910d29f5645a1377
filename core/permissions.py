from models.enums import Role

# ============================================
# COMPILED-IN DEFAULT POLICY
#   module → action → roles allowed
#
# Used only when a site has no roleSettings entry
# for the (module, action) pair.
# ============================================
DEFAULT_PERMISSIONS = {

    # =====================================================
    # RFA
    # =====================================================
    "RFA": {
        "create_shop": [
            Role.BIM, Role.ME, Role.SN, Role.ADMIN,
        ],
        "create_gen": [
            Role.BIM, Role.SITE_ADMIN, Role.ADMIN, Role.ME, Role.SN,
        ],
        "create_mat": [
            Role.SITE_ADMIN, Role.ADMIN, Role.OE, Role.PE,
        ],
        # First-pass review (PENDING_REVIEW)
        "review": [
            Role.SITE_ADMIN, Role.ADMIN_SITE_2, Role.OE, Role.PE, Role.ADMIN,
        ],
        # Final approval (PENDING_CM_APPROVAL)
        "approve": [
            Role.CM, Role.PD, Role.ADMIN,
        ],
    },

    # =====================================================
    # WORK REQUEST
    # =====================================================
    "WORK_REQUEST": {
        "create": [
            Role.PE, Role.OE, Role.ADMIN,
        ],
        "approve_draft": [
            Role.PD, Role.PM, Role.ADMIN,
        ],
        # BIM picks up and delivers the work
        "execute": [
            Role.BIM,
        ],
        "inspect": [
            Role.SITE_ADMIN, Role.ADMIN_SITE_2, Role.OE, Role.PE, Role.ADMIN,
        ],
    },
}


def default_roles(module: str, action: str) -> list[str]:
    """Role strings granted (module, action) by default; empty for unknown keys."""
    return [str(r) for r in DEFAULT_PERMISSIONS.get(module, {}).get(action, [])]
