# -------------------------
# Enums
# -------------------------
from .enums import (
    BaseStrEnum,
    BookingStatus,
    CancelType,
    VehicleStatus,
    PaymentMethod,
    InstructionStatus,
    InstructionType,
    TicketStatus,
    TicketPriority,
    ChatStatus,
    DiscountType,
)

# -------------------------
# Auth
# -------------------------
from .auth import (
    LoginRequest,
    TokenResponse,
    DriverRegister,
    PartnerRegister,
)

# -------------------------
# Admin
# -------------------------
from .admin import (
    DeleteUserRequest,
    BlockUserRequest,
    UpdateUserRoleRequest,
    ResolveAlertRequest,
    TerminateSessionRequest,
)

# -------------------------
# Bookings
# -------------------------
from .booking import (
    BookingCreate,
    BookingCancel,
)

# -------------------------
# Partner
# -------------------------
from .partner import (
    VehicleCreate,
    NotificationIds,
    ConfirmBankTransfer,
    MarkPaymentSent,
)

# -------------------------
# Marketing
# -------------------------
from .promo_code import (
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeToggle,
)

# -------------------------
# Support
# -------------------------
from .support import (
    TicketCreate,
    TicketUpdate,
    ChatSessionCreate,
    ChatMessageCreate,
    QuickResponseCreate,
    SupportNotificationCreate,
    SupportNotificationUpdate,
)
