"""
Security guards for role-based and organization-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import InsufficientPermissionsError


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/trips/start")
        async def start(current_user: dict = Depends(require_role(FIELD_ROLES))):
            ...

    Args:
        allowed_roles: List of UserRole enums that are allowed to access the endpoint

    Returns:
        FastAPI dependency function that validates user role

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


def is_supervisor(current_user: dict) -> bool:
    """True for roles that may act on behalf of other employees."""
    return current_user.get("role") in (
        UserRole.ADMIN.value, UserRole.OWNER.value, UserRole.MANAGER.value
    )


class OrganizationGuard:
    """
    Ownership guard for multi-tenant access.

    Every trip, vehicle and reconciliation belongs to exactly one
    organization; callers only see their own organization's records.

    Usage:
        organization_guard = OrganizationGuard()

        trip = await get_trip(db, trip_id)
        organization_guard.enforce(trip.organization_id, current_user, "trip")
    """

    def enforce(
        self,
        resource_organization_id: int,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Enforce organization match, raise 403 if access denied.

        Admins pass for every organization.
        """
        if current_user.get("role") == UserRole.ADMIN.value:
            return
        if current_user.get("organization_id") != resource_organization_id:
            raise InsufficientPermissionsError(
                message=f"Access denied. You do not have permission to access this {resource_name}."
            )

    def enforce_self_or_supervisor(self, employee_id: int, current_user: dict, resource_name: str = "trip"):
        """Operators may only act on their own trips."""
        if is_supervisor(current_user):
            return
        if current_user.get("user_id") != employee_id:
            raise InsufficientPermissionsError(
                message=f"Access denied. This {resource_name} belongs to another employee."
            )
