# Overview: Service-layer operations for the SOW approval workflow; encapsulates business logic and database work.

"""
SOW Approval Workflow Service

================================================================================
PURPOSE: Move a Statement of Work through its fixed approval gates
================================================================================

STATE MACHINE:
    DRAFT -> SUBMITTED -> OPS_APPROVED -> PENDING_FINANCIAL_APPROVAL -> ACTIVE
                                     |                               |
                                     +-> SUPPLIER_REJECTED           +-> FINANCIALLY_REJECTED

    Gates (one SOWApproval row each, created PENDING when reachable):
        OPS_REVIEW          acted on by OPS_TEAM
        SUPPLIER_REVIEW     acted on by SUPPLIER (accept or reject)
        FINANCIAL_APPROVAL  acted on by APPROVER (limit must cover the SOW value)

RULES (NON-NEGOTIABLE):
1. Every transition checks the current status, re-read inside the transaction
2. No backward transitions; ACTIVE and both *_REJECTED states are terminal
3. The SOW status change and its approval rows commit together or not at all
4. A failed precondition changes nothing and raises WorkflowError
5. Re-running a transition is an error, not a no-op (duplicate submit guard)

NOT CHECKED HERE:
- Which role may call which transition. Routes enforce that through
  permission_service before calling in; this module trusts actor ids.

FINANCIALLY_APPROVED is part of the status vocabulary but no transition sets
it: a financial approval activates the SOW directly.

================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import SOW, SOWApproval, SignatureAuthorityLimit, User
from ..models.sows import APPROVAL_STEPS, SOW_STATUSES
from ..validation import NotFoundError
from .concurrency import lock_for_update, run_in_transaction
from app.time_utils import utcnow


VALID_STATUSES = set(SOW_STATUSES)
TERMINAL_STATUSES = {"SUPPLIER_REJECTED", "FINANCIALLY_REJECTED", "ACTIVE"}

# Ordered pipeline of gates
WORKFLOW_STEPS = APPROVAL_STEPS

SUBMIT_REQUIRED_STATUS = "DRAFT"
SUBMITTED_STATUS = "SUBMITTED"


class WorkflowError(ValueError):
    """
    Raised when a transition's precondition does not hold.

    This is a domain error, not a technical error. The message names the
    status the SOW must be in and is safe to show to the user.
    """
    pass


class ConcurrentTransitionError(WorkflowError):
    """Another request changed the SOW between our read and our write."""
    pass


class SignatureAuthorityError(WorkflowError):
    """Financial approver's signature authority limit is below the SOW value."""
    pass


@dataclass(frozen=True)
class StepRule:
    """How acting on one gate moves the SOW."""
    step: str
    required_status: str
    approved_status: str
    rejected_status: str | None
    actor_field: str
    next_step: str | None


STEP_RULES: dict[str, StepRule] = {
    "OPS_REVIEW": StepRule(
        step="OPS_REVIEW",
        required_status="SUBMITTED",
        approved_status="OPS_APPROVED",
        rejected_status=None,
        actor_field="ops_approver_id",
        next_step="SUPPLIER_REVIEW",
    ),
    "SUPPLIER_REVIEW": StepRule(
        step="SUPPLIER_REVIEW",
        required_status="OPS_APPROVED",
        approved_status="PENDING_FINANCIAL_APPROVAL",
        rejected_status="SUPPLIER_REJECTED",
        actor_field="supplier_user_id",
        next_step="FINANCIAL_APPROVAL",
    ),
    "FINANCIAL_APPROVAL": StepRule(
        step="FINANCIAL_APPROVAL",
        required_status="PENDING_FINANCIAL_APPROVAL",
        approved_status="ACTIVE",
        rejected_status="FINANCIALLY_REJECTED",
        actor_field="financial_approver_id",
        next_step=None,
    ),
}

# operation -> (gate, outcome); submit has no gate of its own
OPERATIONS: dict[str, tuple[str | None, str]] = {
    "submit": (None, "SUBMITTED"),
    "ops_approve": ("OPS_REVIEW", "APPROVED"),
    "supplier_accept": ("SUPPLIER_REVIEW", "APPROVED"),
    "supplier_reject": ("SUPPLIER_REVIEW", "REJECTED"),
    "financial_approve": ("FINANCIAL_APPROVAL", "APPROVED"),
    "financial_reject": ("FINANCIAL_APPROVAL", "REJECTED"),
}

_OPERATION_VERBS = {
    "submit": "submit",
    "ops_approve": "OPS-approve",
    "supplier_accept": "supplier-accept",
    "supplier_reject": "supplier-reject",
    "financial_approve": "financially approve",
    "financial_reject": "financially reject",
}


def _build_transitions() -> set[tuple[str, str]]:
    transitions = {(SUBMIT_REQUIRED_STATUS, SUBMITTED_STATUS)}
    for rule in STEP_RULES.values():
        transitions.add((rule.required_status, rule.approved_status))
        if rule.rejected_status:
            transitions.add((rule.required_status, rule.rejected_status))
    return transitions


VALID_TRANSITIONS = _build_transitions()


# ================================================================================
# STATUS HELPERS
# ================================================================================

def validate_status(status: str) -> None:
    """Raise WorkflowError if status is not a known SOW status."""
    if status not in VALID_STATUSES:
        raise WorkflowError(
            f"Invalid status '{status}'. Must be one of: {', '.join(SOW_STATUSES)}"
        )


def status_rank(status: str) -> int:
    """Position of status in pipeline order; every transition increases it."""
    validate_status(status)
    return SOW_STATUSES.index(status)


def is_terminal(status: str) -> bool:
    validate_status(status)
    return status in TERMINAL_STATUSES


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a status change is one of the workflow's transitions.

    Same-status "transitions" are not allowed: re-running an operation
    must fail its precondition rather than silently succeed.
    """
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def required_status_for(operation: str) -> str:
    """Status a SOW must be in before `operation` may run."""
    if operation not in OPERATIONS:
        raise WorkflowError(f"Unknown workflow operation '{operation}'")
    step, _ = OPERATIONS[operation]
    if step is None:
        return SUBMIT_REQUIRED_STATUS
    return STEP_RULES[step].required_status


def available_operations(status: str) -> list[str]:
    """Operations whose precondition is met by `status`, in pipeline order."""
    validate_status(status)
    return [op for op in OPERATIONS if required_status_for(op) == status]


# ================================================================================
# PERSISTENCE HELPERS
# ================================================================================

def _load_sow_for_update(sow_id: int) -> SOW:
    sow = lock_for_update(db.session.query(SOW).filter_by(id=sow_id)).first()
    if sow is None:
        raise NotFoundError(f"SOW {sow_id} not found")
    return sow


def _require_status(sow: SOW, operation: str) -> None:
    required = required_status_for(operation)
    if sow.status != required:
        raise WorkflowError(
            f"Cannot {_OPERATION_VERBS[operation]} SOW {sow.id}: "
            f"current status is '{sow.status}', must be '{required}'"
        )


def _upsert_approval(sow_id: int, step: str, **fields) -> SOWApproval:
    """Create the (sow_id, step) row if absent, else update it in place."""
    approval = db.session.query(SOWApproval).filter_by(sow_id=sow_id, step=step).first()
    if approval is None:
        approval = SOWApproval(sow_id=sow_id, step=step, **fields)
        db.session.add(approval)
    else:
        for key, value in fields.items():
            setattr(approval, key, value)
    return approval


def _require_signature_authority(sow: SOW, approver_user_id: int) -> None:
    # A SOW without a value needs no authority beyond zero
    required_cents = sow.total_value_cents or 0
    limit = db.session.query(SignatureAuthorityLimit).filter_by(user_id=approver_user_id).first()
    if limit is None or limit.limit_cents < required_cents:
        held = limit.limit_cents if limit is not None else 0
        raise SignatureAuthorityError(
            "Your signature authority limit is below this SOW value "
            f"(limit {held} cents, SOW value {required_cents} cents)"
        )


def _run_transition(sow_id: int, operation: str, apply) -> SOW:
    """
    Load, check, mutate and commit one SOW transition as a single unit.

    `apply(sow)` performs the precondition checks and the writes. Domain
    errors and database errors both roll back everything `apply` did.
    """
    def _op():
        sow = _load_sow_for_update(sow_id)
        from_status = sow.status
        apply(sow)
        return sow, from_status

    try:
        sow, from_status = run_in_transaction(_op)
    except StaleDataError as exc:
        current_app.logger.warning("Concurrent %s on SOW %s lost the race", operation, sow_id)
        raise ConcurrentTransitionError(
            f"SOW {sow_id} was changed by another request; reload it and try again"
        ) from exc
    except WorkflowError as exc:
        current_app.logger.warning("Workflow %s rejected for SOW %s: %s", operation, sow_id, exc)
        raise

    current_app.logger.info("SOW %s %s: %s -> %s", sow.id, operation, from_status, sow.status)
    return sow


def _act_on_step(
    sow_id: int,
    operation: str,
    actor_id: int,
    comment: str | None,
    *,
    extra_check=None,
) -> SOW:
    step, outcome = OPERATIONS[operation]
    rule = STEP_RULES[step]

    def apply(sow: SOW) -> None:
        _require_status(sow, operation)
        if extra_check is not None:
            extra_check(sow)

        if outcome == "APPROVED":
            sow.status = rule.approved_status
        else:
            if rule.rejected_status is None:
                raise WorkflowError(f"Step {step} cannot be rejected")
            sow.status = rule.rejected_status

        _upsert_approval(
            sow.id,
            step,
            status=outcome,
            acted_at=utcnow(),
            comment=comment,
            **{rule.actor_field: actor_id},
        )

        if outcome == "APPROVED" and rule.next_step is not None:
            _upsert_approval(sow.id, rule.next_step, status="PENDING")

    return _run_transition(sow_id, operation, apply)


# ================================================================================
# TRANSITIONS
# ================================================================================

def submit_sow(sow_id: int, submitted_by_user_id: int) -> SOW:
    """
    Submit a DRAFT SOW for review (DRAFT -> SUBMITTED).

    Records the submitting Hiring Manager and opens the first gate
    (OPS_REVIEW, PENDING).

    Raises:
        NotFoundError: SOW does not exist
        WorkflowError: SOW is not in DRAFT
    """
    def apply(sow: SOW) -> None:
        _require_status(sow, "submit")
        sow.status = SUBMITTED_STATUS
        sow.submitted_by_user_id = submitted_by_user_id
        _upsert_approval(sow.id, WORKFLOW_STEPS[0], status="PENDING")

    return _run_transition(sow_id, "submit", apply)


def ops_approve(sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """OPS review passed (SUBMITTED -> OPS_APPROVED); opens SUPPLIER_REVIEW."""
    return _act_on_step(sow_id, "ops_approve", actor_id, comment)


def supplier_accept(sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """Supplier accepts (OPS_APPROVED -> PENDING_FINANCIAL_APPROVAL); opens FINANCIAL_APPROVAL."""
    return _act_on_step(sow_id, "supplier_accept", actor_id, comment)


def supplier_reject(sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """Supplier rejects (OPS_APPROVED -> SUPPLIER_REJECTED, terminal)."""
    return _act_on_step(sow_id, "supplier_reject", actor_id, comment)


def financial_approve(sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """
    Financial approval (PENDING_FINANCIAL_APPROVAL -> ACTIVE).

    The approver's signature authority limit must be >= the SOW total value
    (ties allowed; a NULL total counts as 0). An approver with no limit row
    has no authority at all.

    Raises:
        NotFoundError: SOW does not exist
        WorkflowError: SOW is not PENDING_FINANCIAL_APPROVAL
        SignatureAuthorityError: limit below SOW value
    """
    return _act_on_step(
        sow_id,
        "financial_approve",
        actor_id,
        comment,
        extra_check=lambda sow: _require_signature_authority(sow, actor_id),
    )


def financial_reject(sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """Financial rejection (PENDING_FINANCIAL_APPROVAL -> FINANCIALLY_REJECTED, terminal)."""
    return _act_on_step(sow_id, "financial_reject", actor_id, comment)


_TRANSITION_FUNCTIONS = {
    "ops_approve": ops_approve,
    "supplier_accept": supplier_accept,
    "supplier_reject": supplier_reject,
    "financial_approve": financial_approve,
    "financial_reject": financial_reject,
}


def perform(operation: str, sow_id: int, actor_id: int, comment: str | None = None) -> SOW:
    """Dispatch a named operation; used by routes and the CLI."""
    if operation == "submit":
        return submit_sow(sow_id, actor_id)
    if operation not in _TRANSITION_FUNCTIONS:
        raise WorkflowError(f"Unknown workflow operation '{operation}'")
    return _TRANSITION_FUNCTIONS[operation](sow_id, actor_id, comment)


# ================================================================================
# QUERIES
# ================================================================================

def get_eligible_financial_approvers(total_value_cents: int | None) -> list[dict]:
    """
    Users whose signature authority covers `total_value_cents`.

    Smallest sufficient authority first, so the first entry is the natural
    approver to route to. Returns [] without touching the database when the
    SOW has no value.
    """
    if total_value_cents is None:
        return []

    rows = (
        db.session.query(SignatureAuthorityLimit, User)
        .join(User, User.id == SignatureAuthorityLimit.user_id)
        .filter(SignatureAuthorityLimit.limit_cents >= total_value_cents)
        .order_by(SignatureAuthorityLimit.limit_cents.asc(), User.id.asc())
        .all()
    )
    return [
        {"id": user.id, "name": user.name, "email": user.email, "limit_cents": limit.limit_cents}
        for limit, user in rows
    ]


def ensure_approval_steps(sow_id: int) -> list[SOWApproval]:
    """
    Make sure every gate has a row, creating missing ones as PENDING.

    Idempotent: rows that already exist keep their status, actor and comment.
    """
    def _op():
        if db.session.get(SOW, sow_id) is None:
            raise NotFoundError(f"SOW {sow_id} not found")
        for step in WORKFLOW_STEPS:
            existing = db.session.query(SOWApproval).filter_by(sow_id=sow_id, step=step).first()
            if existing is None:
                db.session.add(SOWApproval(sow_id=sow_id, step=step, status="PENDING"))

    run_in_transaction(_op)
    return get_approvals(sow_id)


def get_approvals(sow_id: int) -> list[SOWApproval]:
    """Approval rows of a SOW in gate order."""
    order = {step: i for i, step in enumerate(WORKFLOW_STEPS)}
    rows = db.session.query(SOWApproval).filter_by(sow_id=sow_id).all()
    return sorted(rows, key=lambda a: order[a.step])
