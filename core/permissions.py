# ============================================
# CENTRALIZED ROLE → PERMISSION LEVELS
# ============================================
from core.roles import Role

# Ordered from weakest to strongest
PERMISSION_LEVELS = ["NONE", "VIEW", "LIMITED", "MANAGE", "FULL"]

PERMISSION_AREAS = [
    "systemSettings",
    "roleManagement",
    "fleetManagement",
    "vehicleApproval",
    "fleetAnalytics",
    "partnerManagement",
    "partnerApproval",
    "driverManagement",
    "driverApproval",
    "bookingManagement",
    "bookingApproval",
    "financialManagement",
    "paymentManagement",
    "revenueAnalytics",
    "documentManagement",
    "documentApproval",
    "supportManagement",
    "notificationManagement",
    "analyticsAccess",
    "reportGeneration",
    "securityManagement",
    "auditLogs",
    "complianceManagement",
]


def _levels(default: str, **overrides) -> dict:
    levels = {area: default for area in PERMISSION_AREAS}
    levels.update(overrides)
    return levels


ROLE_PERMISSIONS = {

    # =====================================================
    # SUPER ADMIN: full access to everything
    # =====================================================
    Role.SUPER_ADMIN: _levels("FULL"),

    # =====================================================
    # ADMIN: cannot manage roles or system settings
    # =====================================================
    Role.ADMIN: _levels(
        "FULL",
        systemSettings="VIEW",
        roleManagement="NONE",
        securityManagement="VIEW",
        auditLogs="VIEW",
        complianceManagement="VIEW",
    ),

    # =====================================================
    # ADMIN STAFF: read-only except support
    # =====================================================
    Role.ADMIN_STAFF: _levels(
        "VIEW",
        systemSettings="NONE",
        roleManagement="NONE",
        vehicleApproval="NONE",
        partnerApproval="NONE",
        driverApproval="NONE",
        bookingApproval="NONE",
        documentApproval="NONE",
        supportManagement="MANAGE",
        securityManagement="NONE",
        auditLogs="NONE",
        complianceManagement="NONE",
    ),

    # =====================================================
    # PARTNER: manages own fleet, drivers, bookings
    # =====================================================
    Role.PARTNER: _levels(
        "NONE",
        fleetManagement="MANAGE",
        fleetAnalytics="VIEW",
        driverManagement="MANAGE",
        bookingManagement="MANAGE",
        financialManagement="VIEW",
        paymentManagement="VIEW",
        revenueAnalytics="VIEW",
        documentManagement="MANAGE",
        supportManagement="VIEW",
        notificationManagement="VIEW",
        analyticsAccess="VIEW",
        reportGeneration="VIEW",
    ),

    # =====================================================
    # PARTNER STAFF
    # =====================================================
    Role.PARTNER_STAFF: _levels(
        "NONE",
        fleetManagement="VIEW",
        fleetAnalytics="VIEW",
        driverManagement="VIEW",
        bookingManagement="VIEW",
        financialManagement="VIEW",
        paymentManagement="VIEW",
        revenueAnalytics="VIEW",
        documentManagement="VIEW",
        supportManagement="VIEW",
        notificationManagement="VIEW",
        analyticsAccess="VIEW",
        reportGeneration="VIEW",
    ),

    # =====================================================
    # DRIVER
    # =====================================================
    Role.DRIVER: _levels(
        "NONE",
        bookingManagement="VIEW",
        financialManagement="VIEW",
        paymentManagement="VIEW",
        revenueAnalytics="VIEW",
        documentManagement="VIEW",
        supportManagement="VIEW",
        notificationManagement="VIEW",
        analyticsAccess="VIEW",
        reportGeneration="VIEW",
    ),

    # =====================================================
    # FALLBACK
    # =====================================================
    Role.USER: _levels("NONE"),
}


# ============================================
# ADMIN SIDEBAR SECTIONS (admin_staff.sidebar_access keys)
# ============================================
ADMIN_SIDEBAR_SECTIONS = (
    "dashboard", "analytics", "users", "partners", "drivers", "bookings",
    "fleet", "documents", "payments", "claims", "support", "notifications",
    "sales", "marketing", "quality", "security", "staff", "settings",
    "integrations", "workflow", "reports",
)


def normalize_sidebar_access(raw) -> dict:
    """Every known section as a bool; keys are matched case-insensitively."""
    raw = {str(k).lower(): v for k, v in (raw or {}).items()}
    return {section: bool(raw.get(section)) for section in ADMIN_SIDEBAR_SECTIONS}
