# permissions/roles.py

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission


# =========================================================
# ROLE CONSTANTS (FINANCE STAFF JOB ROLES)
# =========================================================
# One auth.Group per role (see seed_roles).
ROLE_ADMIN = "admin"
ROLE_FINANCE_MANAGER = "finance_manager"
ROLE_AR_CLERK = "ar_clerk"
ROLE_AP_CLERK = "ap_clerk"
ROLE_CREDIT_CONTROLLER = "credit_controller"
ROLE_AUDITOR = "auditor"

STAFF_ROLES = {
    ROLE_ADMIN,
    ROLE_FINANCE_MANAGER,
    ROLE_AR_CLERK,
    ROLE_AP_CLERK,
    ROLE_CREDIT_CONTROLLER,
    ROLE_AUDITOR,
}


# =========================================================
# CAPABILITIES (DJANGO MODEL PERMISSIONS)
# =========================================================
# "<app_label>.<codename>", declared in the models' Meta.permissions.

# Accounts receivable
CAP_AR_RECORD = "receivables.process_ar_payments"
CAP_AR_VERIFY = "receivables.verify_ar_payments"
CAP_AR_APPROVE = "receivables.approve_ar_payments"
CAP_AR_ALLOCATE = "receivables.allocate_payments"
CAP_AR_REVERSE = "receivables.reverse_payment_allocations"
CAP_AR_RECONCILE = "receivables.reconcile_ar_payments"

CAP_CREDIT_MANAGE = "receivables.manage_credit_limits"
CAP_CREDIT_REVIEW = "receivables.review_credit"

CAP_AGING_VIEW = "receivables.view_ar_aging"
CAP_AGING_GENERATE = "receivables.generate_ar_aging"

CAP_SCHEDULES_MANAGE = "receivables.manage_payment_schedules"

# Accounts payable
CAP_AP_RECORD = "purchases.process_payments"
CAP_AP_APPROVE = "purchases.approve_payments"
CAP_AP_ALLOCATE = "purchases.allocate_supplier_payments"
CAP_AP_BALANCES_VIEW = "purchases.view_supplier_balances"
CAP_AP_CREDIT_MANAGE = "purchases.manage_supplier_credit"

AR_CAPABILITIES = {
    CAP_AR_RECORD,
    CAP_AR_VERIFY,
    CAP_AR_APPROVE,
    CAP_AR_ALLOCATE,
    CAP_AR_REVERSE,
    CAP_AR_RECONCILE,
    CAP_CREDIT_MANAGE,
    CAP_CREDIT_REVIEW,
    CAP_AGING_VIEW,
    CAP_AGING_GENERATE,
    CAP_SCHEDULES_MANAGE,
}

AP_CAPABILITIES = {
    CAP_AP_RECORD,
    CAP_AP_APPROVE,
    CAP_AP_ALLOCATE,
    CAP_AP_BALANCES_VIEW,
    CAP_AP_CREDIT_MANAGE,
}

ALL_CAPABILITIES = AR_CAPABILITIES | AP_CAPABILITIES


# =========================================================
# ROLE → CAPABILITY MAP (DEFAULT)
# =========================================================
ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_ADMIN: {
        *ALL_CAPABILITIES,
    },
    ROLE_FINANCE_MANAGER: {
        *ALL_CAPABILITIES,
    },
    ROLE_AR_CLERK: {
        CAP_AR_RECORD,
        CAP_AR_ALLOCATE,
        CAP_AGING_VIEW,
        CAP_SCHEDULES_MANAGE,
        # verify / approve sit with credit control
    },
    ROLE_AP_CLERK: {
        CAP_AP_RECORD,
        CAP_AP_ALLOCATE,
        CAP_AP_BALANCES_VIEW,
    },
    ROLE_CREDIT_CONTROLLER: {
        CAP_AR_VERIFY,
        CAP_AR_REVERSE,
        CAP_CREDIT_MANAGE,
        CAP_CREDIT_REVIEW,
        CAP_AGING_VIEW,
        CAP_AGING_GENERATE,
    },
    ROLE_AUDITOR: {
        CAP_AR_RECONCILE,
        CAP_AGING_VIEW,
        CAP_AP_BALANCES_VIEW,
    },
}


# =========================================================
# Helpers
# =========================================================
def split_capability(capability: str) -> tuple[str, str]:
    app_label, _, codename = capability.partition(".")
    return app_label, codename


def get_user_roles(user) -> set[str]:
    """
    Roles are auth.Group names.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()
    names = user.groups.values_list("name", flat=True)
    return {name for name in names if name in STAFF_ROLES}


def get_primary_role(user) -> Optional[str]:
    roles = get_user_roles(user)
    for role in (
        ROLE_ADMIN,
        ROLE_FINANCE_MANAGER,
        ROLE_CREDIT_CONTROLLER,
        ROLE_AR_CLERK,
        ROLE_AP_CLERK,
        ROLE_AUDITOR,
    ):
        if role in roles:
            return role
    return None


def effective_capabilities_for(user) -> set[str]:
    """
    Capabilities actually granted to the user (groups + direct grants),
    restricted to the AR/AP vocabulary.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return set()
    if user.is_superuser:
        return set(ALL_CAPABILITIES)
    return set(user.get_all_permissions()) & ALL_CAPABILITIES


# =========================================================
# Base Role Permission (Internal Use)
# =========================================================
class BaseRolePermission(BasePermission):
    """
    Base permission for role-based access control.

    Subclasses must define:
    - allowed_roles (set)
    """

    allowed_roles: set[str] = set()

    def has_permission(self, request, view):
        user = request.user

        if not user or not user.is_authenticated:
            return False

        return bool(get_user_roles(user) & self.allowed_roles)


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_AR_ALLOCATE
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        required = getattr(view, "required_capability", None)
        if not required:
            # deny by default
            return False

        return required in effective_capabilities_for(user)


class HasAnyCapability(BasePermission):
    """
    Require ANY capability from a list.

    Usage:
        view.required_any_capabilities = {CAP_AGING_VIEW, CAP_AP_BALANCES_VIEW}
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        required = getattr(view, "required_any_capabilities", None)
        if not required:
            return False

        caps = effective_capabilities_for(user)
        return any(cap in caps for cap in set(required))


class IsFinanceManagerOrAdmin(BaseRolePermission):
    allowed_roles = {ROLE_FINANCE_MANAGER, ROLE_ADMIN}


class IsFinanceStaff(BaseRolePermission):
    allowed_roles = STAFF_ROLES
