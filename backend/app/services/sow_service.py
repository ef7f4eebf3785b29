# Overview: Service-layer operations for SOW drafting and lookup; encapsulates business logic and database work.

"""
SOW drafting service.

Creates SOWs in DRAFT with their milestones and serves the read side used by
the dashboard. Everything after creation goes through workflow_service.

total_value_cents is the sum of milestone amounts at creation time. A SOW
without milestones has a NULL total (it is treated as 0 by financial
approval). The total is never recomputed afterwards.
"""

from __future__ import annotations

from ..extensions import db
from ..models import SOW, Milestone, Vendor
from ..models.sows import ACCEPTANCE_METHODS, LANGUAGES, SOW_STATUSES, TEMPLATE_TYPES
from ..validation import (
    MAX_AMOUNT_CENTS,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)


SOW_POLICY = ModelValidationPolicy(
    writable_fields={
        "title",
        "description",
        "template_type",
        "language",
        "effective_date",
        "end_date",
        "cost_center",
        "location",
        "out_of_scope",
        "assumptions",
        "client_poc_name",
        "client_poc_email",
        "payment_terms",
        "vendor_id",
    },
    required_on_create={"title"},
    choices={
        "template_type": TEMPLATE_TYPES,
        "language": LANGUAGES,
    },
)

MILESTONE_POLICY = ModelValidationPolicy(
    writable_fields={
        "title",
        "amount_cents",
        "due_date",
        "recurring",
        "acceptance_criteria",
        "acceptance_method",
    },
    required_on_create={"title", "amount_cents"},
    choices={"acceptance_method": ACCEPTANCE_METHODS},
)


def _validate_milestones(raw_milestones) -> list[dict]:
    if raw_milestones is None:
        return []
    if not isinstance(raw_milestones, list):
        raise ValidationError("milestones must be a list")

    cleaned = []
    for index, raw in enumerate(raw_milestones):
        try:
            patch = validate_payload(model=Milestone, payload=raw, policy=MILESTONE_POLICY, partial=False)
        except ValidationError as e:
            raise ValidationError(f"milestones[{index}]: {e}")
        if patch["amount_cents"] <= 0:
            raise ValidationError(f"milestones[{index}]: amount_cents must be > 0")
        patch.setdefault("recurring", False)
        cleaned.append(patch)
    return cleaned


def create_sow(payload: dict, *, created_by_user_id: int) -> SOW:
    """
    Create a DRAFT SOW with its milestones.

    Args:
        payload: SOW header fields plus an optional "milestones" list
        created_by_user_id: Hiring Manager drafting the SOW (becomes owner)

    Returns:
        The created SOW

    Raises:
        ValidationError: payload rejected (unknown field, bad type, bad choice,
            non-positive milestone amount, end date before effective date)
        NotFoundError: vendor_id does not exist
    """
    if payload is None or not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    header = dict(payload)
    if header.get("template_type") in (None, ""):
        header.pop("template_type", None)
    milestones = _validate_milestones(header.pop("milestones", None))

    patch = validate_payload(model=SOW, payload=header, policy=SOW_POLICY, partial=False)
    if patch.get("template_type") is None:
        patch["template_type"] = "MANAGED_PROJECT"

    effective, end = patch.get("effective_date"), patch.get("end_date")
    if effective and end and end < effective:
        raise ValidationError("end_date cannot be before effective_date")

    vendor_id = patch.get("vendor_id")
    if vendor_id is not None and db.session.get(Vendor, vendor_id) is None:
        raise NotFoundError(f"Vendor {vendor_id} not found")

    total = sum(m["amount_cents"] for m in milestones) if milestones else None
    if total is not None and total > MAX_AMOUNT_CENTS:
        raise ValidationError(f"SOW total cannot exceed {MAX_AMOUNT_CENTS} cents")

    sow = SOW(
        **patch,
        status="DRAFT",
        total_value_cents=total,
        created_by_user_id=created_by_user_id,
        submitted_by_user_id=created_by_user_id,
    )
    for position, m in enumerate(milestones):
        sow.milestones.append(Milestone(position=position, **m))

    db.session.add(sow)
    db.session.commit()
    return sow


def get_sow(sow_id: int) -> SOW:
    sow = db.session.get(SOW, sow_id)
    if sow is None:
        raise NotFoundError(f"SOW {sow_id} not found")
    return sow


def _status_query(status: str | None):
    q = db.session.query(SOW)
    if status is not None:
        if status not in SOW_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SOW_STATUSES)}")
        q = q.filter(SOW.status == status)
    return q


DEFAULT_LIST_LIMIT = 200
MAX_LIST_LIMIT = 500


def list_sows(
    *,
    status: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    offset: int = 0,
) -> list[SOW]:
    """SOWs for the dashboard, most recently updated first, one page at a time."""
    if not 1 <= limit <= MAX_LIST_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must be >= 0")

    return _status_query(status).order_by(SOW.updated_at.desc(), SOW.id.desc()).offset(offset).limit(limit).all()


def count_sows(*, status: str | None = None) -> int:
    return _status_query(status).count()

