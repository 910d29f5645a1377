# -------------------------
# Enums
# -------------------------
from .enums import (
    Role,
    Module,
    RfaAction,
    WorkRequestAction,
    UserStatus,
    InvitationStatus,
    RfaType,
    RfaStatus,
    WorkRequestStatus,
    WorkRequestPriority,
)

# -------------------------
# Site / policy Models
# -------------------------
from .site import (
    SitePolicy,
    SiteRead,
    UserOverridesUpdate,
    RoleSettingsUpdate,
)

# -------------------------
# Document Models
# -------------------------
from .document import (
    StagedFile,
    WorkflowStep,
    RfaCreate,
    RfaRead,
    WorkRequestCreate,
    WorkRequestRead,
    TransitionRequest,
    TransitionResult,
    RevisionCreate,
    RevisionResult,
)

# -------------------------
# User / invitation Models
# -------------------------
from .user import UserProfile, ProfileUpdate, UserAdminUpdate
from .invitation import (
    InvitationCreate,
    InvitationResult,
    InvitationView,
    InvitationAccept,
)
from .category import CategoryCreate, CategoryRead
from .notification import DispatchReport, NotificationRequest
