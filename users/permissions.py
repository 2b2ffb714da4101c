from rest_framework.permissions import BasePermission, SAFE_METHODS
from users.enums import UserRole


def is_admin_user(user):
    return bool(
        user
        and user.is_authenticated
        and (getattr(user, "role", None) == UserRole.ADMIN.value or user.is_staff)
    )


def is_vendor_user(user):
    return bool(
        user
        and user.is_authenticated
        and getattr(user, "role", None) == UserRole.VENDOR.value
    )


class IsRoleAdmin(BasePermission):
    def has_permission(self, request, view):
        return is_admin_user(request.user)


class IsVendor(BasePermission):
    def has_permission(self, request, view):
        return is_vendor_user(request.user)


class IsCustomer(BasePermission):
    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and getattr(request.user, "role", None) == UserRole.CUSTOMER.value
        )


class IsVendorOrAdmin(BasePermission):
    def has_permission(self, request, view):
        return is_admin_user(request.user) or is_vendor_user(request.user)


class IsAdminOrReadOnly(BasePermission):
    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return is_admin_user(request.user)
