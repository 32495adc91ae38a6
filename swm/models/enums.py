"""Enums for the approval workflow - these define the valid values for records and callers."""
from enum import Enum


class Operation(str, Enum):
    """The three mutations a change record can replay."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class BackendType(str, Enum):
    """Which store a change record is replayed against."""
    RELATIONAL = "RELATIONAL"
    DOCUMENT = "DOCUMENT"


class ChangeStatus(str, Enum):
    """Review status. Approved and rejected are terminal."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class Priority(str, Enum):
    """Display/sort tier for reviewers. Never gates execution."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Role(str, Enum):
    """Caller roles supplied by the auth collaborator."""
    SUPER_ADMIN = "super-admin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    CITIZEN = "citizen"


ADMIN_ROLES = (Role.SUPER_ADMIN.value, Role.ADMIN.value)
REVIEW_REQUEST_ROLES = (Role.MANAGER.value,) + ADMIN_ROLES

HTTP_METHOD_OPERATIONS = {
    "POST": Operation.CREATE,
    "PUT": Operation.UPDATE,
    "PATCH": Operation.UPDATE,
    "DELETE": Operation.DELETE,
}

PRIORITY_RANK = {
    Priority.URGENT: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}
