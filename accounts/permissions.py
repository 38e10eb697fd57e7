from rest_framework.permissions import BasePermission


def role_of(user):
    account = getattr(user, "account", None)
    return account.role if account is not None else None


class IsAdminRole(BasePermission):
    message = "Forbidden"

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and role_of(request.user) == "admin")
