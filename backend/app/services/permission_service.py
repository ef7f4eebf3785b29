# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Role Checking and Security Event Logging

WHY: Each workflow gate belongs to exactly one role. The workflow engine
trusts the actor it is given, so this module is where a Supplier trying to
OPS-approve (or anyone else acting out of turn) gets stopped.

DESIGN PRINCIPLES:
- Fail closed: an operation not listed for a role is denied
- Log denials only: grants are not logged
"""

from ..extensions import db
from ..models import SecurityEvent, User
from ..models.auth import ROLE_APPROVER, ROLE_HIRING_MANAGER, ROLE_OPS_TEAM, ROLE_SUPPLIER
from . import workflow_service
from app.time_utils import utcnow


# Role -> operations it may perform. "create" is SOW drafting; the rest are
# workflow_service operations.
ROLE_OPERATIONS: dict[str, tuple[str, ...]] = {
    ROLE_HIRING_MANAGER: ("create", "submit"),
    ROLE_OPS_TEAM: ("ops_approve",),
    ROLE_SUPPLIER: ("supplier_accept", "supplier_reject"),
    ROLE_APPROVER: ("financial_approve", "financial_reject"),
}

# User-facing denial messages
DENIAL_MESSAGES = {
    "create": "Only Hiring Manager can create SOW.",
    "submit": "Only Hiring Manager can submit.",
    "ops_approve": "Only OPS can approve.",
    "supplier_accept": "Only Supplier can accept.",
    "supplier_reject": "Only Supplier can reject.",
    "financial_approve": "Only Approver can financially approve.",
    "financial_reject": "Only Approver can financially reject.",
}


class PermissionDeniedError(Exception):
    """Raised when user's role may not perform an operation."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    event_type examples:
    - LOGIN_SUCCESS
    - LOGIN_FAILED
    - LOGOUT
    - ROLE_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def role_allows(role: str, operation: str) -> bool:
    return operation in ROLE_OPERATIONS.get(role, ())


def check_operation(
    user: User,
    operation: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError unless user's role may perform operation.

    Denials are written to security_events before raising.
    """
    if role_allows(user.role, operation):
        return

    log_security_event(
        user_id=user.id,
        event_type="ROLE_DENIED",
        success=False,
        resource=resource,
        action=operation,
        reason=f"Role {user.role} may not perform {operation}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(DENIAL_MESSAGES.get(operation, f"Permission denied: {operation}"))


def available_actions(status: str, role: str) -> list[str]:
    """
    Workflow operations `role` can run right now on a SOW in `status`.

    Used to decide which action buttons a client shows. Signature authority
    is not considered here; financial_approve may still fail on the limit.
    """
    return [
        op for op in workflow_service.available_operations(status)
        if role_allows(role, op)
    ]
