"""
User role and vehicle enumerations.

Roles are assigned by the platform's organization service and carried in
the JWT ``role`` claim.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Platform administrator, sees every organization
        OWNER: Owner of a servicing company (organization)
        MANAGER: Dispatcher / supervisor inside an organization
        OPERATOR: Field employee who drives trips and services sites
    """
    ADMIN = "ADMIN"
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    OPERATOR = "OPERATOR"


# Roles allowed to drive trips and submit GPS points
FIELD_ROLES = [UserRole.ADMIN, UserRole.OWNER, UserRole.MANAGER, UserRole.OPERATOR]

# Roles allowed to review anomalies and analytics
SUPERVISOR_ROLES = [UserRole.ADMIN, UserRole.OWNER, UserRole.MANAGER]


class VehicleType(str, enum.Enum):
    """Ownership class of a vehicle."""
    COMPANY = "COMPANY"
    PERSONAL = "PERSONAL"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    MAINTENANCE = "MAINTENANCE"
