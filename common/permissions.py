import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ALL_ROLES = {
    User.Role.ADMIN,
    User.Role.OMC,
    User.Role.DEALER,
    User.Role.STATION_MANAGER,
    User.Role.ATTENDANT,
}

ROLE_CAPABILITY_MATRIX = {
    "stations.view": ALL_ROLES,
    "pumps.view": ALL_ROLES,
    "sales.view": ALL_ROLES,
    "sales.create": {User.Role.ADMIN, User.Role.STATION_MANAGER, User.Role.ATTENDANT},
    "sales.edit": {User.Role.ADMIN, User.Role.STATION_MANAGER},
    "sales.reports.view": ALL_ROLES,
    "deposit.view": ALL_ROLES,
    "deposit.create": {User.Role.ADMIN, User.Role.OMC, User.Role.DEALER, User.Role.STATION_MANAGER},
    "deposit.manage": {User.Role.ADMIN, User.Role.OMC, User.Role.DEALER},
    "deposit.modify.any_status": {User.Role.ADMIN},
    "report.view": ALL_ROLES,
    "report.submit": {User.Role.ADMIN, User.Role.STATION_MANAGER},
    "admin.records.manage": {User.Role.ADMIN},
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    role = getattr(user, "role", None)
    if role:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.ATTENDANT


def role_has_capability(role, capability):
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return role in allowed_roles


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return role_has_capability(get_user_role(user), capability)


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts."""

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
        return allowed
