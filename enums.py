from enum import Enum
from typing import Dict, FrozenSet


class UserType(str, Enum):
    CUSTOMER = "customer"
    MECHANIC = "mechanic"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentType(str, Enum):
    SCHEDULED = "scheduled"
    EMERGENCY = "emergency"


class TokenType(str, Enum):
    AUTH = "auth"
    RESET_PASSWORD = "resetPassword"
    EMAIL_VERIFICATION = "emailVerification"


class ShopRole(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"
    STAFF = "staff"


class Permission(str, Enum):
    MANAGE_ADMINS = "manageAdmins"
    MANAGE_SERVICES = "manageServices"
    MANAGE_SCHEDULE = "manageSchedule"
    MANAGE_APPOINTMENTS = "manageAppointments"
    VIEW_FINANCES = "viewFinances"
    VIEW_ANALYTICS = "viewAnalytics"


ROLE_PERMISSIONS: Dict[ShopRole, FrozenSet[Permission]] = {
    ShopRole.OWNER: frozenset(Permission),
    ShopRole.MANAGER: frozenset(Permission) - {Permission.MANAGE_ADMINS},
    ShopRole.STAFF: frozenset({Permission.MANAGE_SCHEDULE, Permission.MANAGE_APPOINTMENTS}),
}

# Appointment transitions; statuses missing from the map are terminal
STATUS_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.ACCEPTED, AppointmentStatus.REJECTED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.ACCEPTED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
}

VEHICLE_TYPES = ["sedan", "SUV", "truck", "hatchback", "van", "coupe"]
