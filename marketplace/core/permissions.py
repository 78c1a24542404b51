from rest_framework.permissions import BasePermission


class IsCustomer(BasePermission):
    message = 'Only customers can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_customer)


class IsFarmer(BasePermission):
    message = 'Only farmers can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_farmer)


class IsMarketplaceAdmin(BasePermission):
    message = 'Only admins can perform this action.'

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.is_marketplace_admin)
