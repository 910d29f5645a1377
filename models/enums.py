from enum import Enum


class BaseStrEnum(str, Enum):
    """
    Base enum that serializes cleanly to a string
    and provides a .list() method for UI dropdowns.
    """

    def __str__(self):
        return str(self.value)

    @classmethod
    def list(cls):
        return [item.value for item in cls]


# -----------------------------------------------------
# ROLE
# -----------------------------------------------------
class Role(BaseStrEnum):
    """Fixed role enumeration. Values are the strings stored on user profiles."""

    BIM = "BIM"
    ME = "ME"
    SN = "SN"
    SITE_ADMIN = "Site Admin"
    ADMIN_SITE_2 = "Adminsite2"
    OE = "OE"
    PE = "PE"
    CM = "CM"
    PD = "PD"
    PM = "PM"
    SE = "SE"
    ADMIN = "Admin"


# -----------------------------------------------------
# PERMISSION MODULES / ACTIONS
# -----------------------------------------------------
class Module(BaseStrEnum):
    RFA = "RFA"
    WORK_REQUEST = "WORK_REQUEST"


class RfaAction(BaseStrEnum):
    CREATE_SHOP = "create_shop"
    CREATE_GEN = "create_gen"
    CREATE_MAT = "create_mat"
    REVIEW = "review"
    APPROVE = "approve"


class WorkRequestAction(BaseStrEnum):
    CREATE = "create"
    APPROVE_DRAFT = "approve_draft"
    EXECUTE = "execute"
    INSPECT = "inspect"


MODULE_ACTIONS = {
    Module.RFA: RfaAction.list(),
    Module.WORK_REQUEST: WorkRequestAction.list(),
}


# -----------------------------------------------------
# USER / INVITATION STATUS
# -----------------------------------------------------
class UserStatus(BaseStrEnum):
    ACTIVE = "ACTIVE"
    PENDING_FIRST_LOGIN = "PENDING_FIRST_LOGIN"
    DISABLED = "DISABLED"


class InvitationStatus(BaseStrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EXPIRED = "EXPIRED"


# -----------------------------------------------------
# RFA
# -----------------------------------------------------
class RfaType(BaseStrEnum):
    """Kind of RFA. Each kind has its own create permission and number prefix."""

    SHOP = "RFA-SHOP"
    GEN = "RFA-GEN"
    MAT = "RFA-MAT"


class RfaStatus(BaseStrEnum):
    """Workflow state of one RFA revision."""

    PENDING_REVIEW = "PENDING_REVIEW"
    PENDING_CM_APPROVAL = "PENDING_CM_APPROVAL"
    REVISION_REQUIRED = "REVISION_REQUIRED"
    APPROVED = "APPROVED"
    APPROVED_WITH_COMMENTS = "APPROVED_WITH_COMMENTS"
    APPROVED_REVISION_REQUIRED = "APPROVED_REVISION_REQUIRED"
    REJECTED = "REJECTED"


# -----------------------------------------------------
# WORK REQUEST
# -----------------------------------------------------
class WorkRequestStatus(BaseStrEnum):
    """Workflow state of one Work Request revision."""

    DRAFT = "DRAFT"
    REJECTED_BY_PM = "REJECTED_BY_PM"
    PENDING_BIM = "PENDING_BIM"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_ACCEPTANCE = "PENDING_ACCEPTANCE"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    COMPLETED = "COMPLETED"


class WorkRequestPriority(BaseStrEnum):
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"
