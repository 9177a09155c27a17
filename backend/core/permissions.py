"""
Dynamic RBAC: check permission by code on every API endpoint.
Views may map HTTP methods to different codes via permission_codes.
"""
from rest_framework import permissions


class HasPermission(permissions.BasePermission):
    """Require specific permission code (e.g. create_booking, post_payment)."""
    permission_code = None  # Override in view

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True
        code = self.code_for(request, view)
        if not code:
            return True
        return request.user.has_perm_code(code)

    def code_for(self, request, view):
        per_method = getattr(view, 'permission_codes', None) or {}
        if request.method in per_method:
            return per_method[request.method]
        return getattr(view, 'permission_code', None) or self.permission_code


class HasPermissionOrReadOnly(HasPermission):
    """Allow GET/HEAD/OPTIONS without permission; others require permission_code."""
    def has_permission(self, request, view):
        if request.method in permissions.SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return super().has_permission(request, view)


class IsManager(permissions.BasePermission):
    """Hotel admin/owner only (superuser or is_manager)."""
    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin_or_owner)
