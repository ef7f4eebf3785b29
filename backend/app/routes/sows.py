# Overview: Flask API routes for SOW drafting and approval workflow; parses input and returns JSON responses.

# backend/app/routes/sows.py
"""
SOW API Routes

Drafting and read side:
- GET  /api/sows                          - list SOWs (optional ?status=)
- POST /api/sows                          - create a DRAFT SOW (HIRING_MANAGER)
- GET  /api/sows/:id                      - SOW with milestones, approvals, available actions
- GET  /api/sows/:id/eligible-approvers   - approvers whose limit covers the SOW value

Workflow transitions (body: {"comment": "..."} optional):
- POST /api/sows/:id/submit               - HIRING_MANAGER
- POST /api/sows/:id/ops-approve          - OPS_TEAM
- POST /api/sows/:id/supplier-accept      - SUPPLIER
- POST /api/sows/:id/supplier-reject      - SUPPLIER
- POST /api/sows/:id/financial-approve    - APPROVER
- POST /api/sows/:id/financial-reject     - APPROVER

SECURITY:
- All routes require authentication
- The role check happens here (require_operation); workflow_service trusts it
- Actor ids come from the authenticated session, NOT from the request body
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import permission_service, sow_service, workflow_service
from ..services.workflow_service import (
    ConcurrentTransitionError,
    SignatureAuthorityError,
    WorkflowError,
)
from ..validation import NotFoundError, ValidationError, normalize_comment
from ..decorators import require_auth, require_operation


sows_bp = Blueprint("sows", __name__, url_prefix="/api/sows")


def _sow_detail(sow) -> dict:
    data = sow.to_dict(include_details=True)
    data["available_actions"] = permission_service.available_actions(sow.status, g.current_user.role)
    return data


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


@sows_bp.get("")
@require_auth
def list_sows_route():
    """
    List SOWs, most recently updated first.

    Query params:
        status: optional SOW status filter
        limit:  page size, default 200, max 500
        offset: rows to skip, default 0

    "has_more" is true when another page exists.
    """
    status = request.args.get("status") or None
    try:
        limit = _int_arg("limit", sow_service.DEFAULT_LIST_LIMIT)
        offset = _int_arg("offset", 0)
        sows = sow_service.list_sows(status=status, limit=limit, offset=offset)
        total = sow_service.count_sows(status=status)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "sows": [s.to_dict() for s in sows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(sows) < total,
    }), 200


@sows_bp.post("")
@require_auth
@require_operation("create")
def create_sow_route():
    """
    Create a DRAFT SOW.

    Body: SOW header fields plus optional "milestones":
        [{"title", "amount_cents", "due_date", "recurring",
          "acceptance_criteria", "acceptance_method"}, ...]

    total_value_cents is computed from the milestones and cannot be sent.
    """
    try:
        sow = sow_service.create_sow(request.get_json(silent=True), created_by_user_id=g.current_user.id)
        current_app.logger.info("SOW %s drafted by user %s", sow.id, g.current_user.id)
        return jsonify({"sow": _sow_detail(sow)}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create SOW")
        return jsonify({"error": "Internal server error"}), 500


@sows_bp.get("/<int:sow_id>")
@require_auth
def get_sow_route(sow_id: int):
    try:
        sow = sow_service.get_sow(sow_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"sow": _sow_detail(sow)}), 200


@sows_bp.get("/<int:sow_id>/eligible-approvers")
@require_auth
def eligible_approvers_route(sow_id: int):
    try:
        sow = sow_service.get_sow(sow_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    approvers = workflow_service.get_eligible_financial_approvers(sow.total_value_cents)
    return jsonify({
        "sow_id": sow.id,
        "total_value_cents": sow.total_value_cents,
        "approvers": approvers,
    }), 200


def _comment_from_body() -> str | None:
    data = request.get_json(silent=True)
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return normalize_comment(data.get("comment"))


def _run_workflow_action(sow_id: int, operation: str):
    """
    Invoke one workflow transition and translate its errors.

    Error responses:
        400: Precondition not met (wrong current status) or malformed body
        403: Signature authority limit below SOW value
        404: SOW not found
        409: Another request moved the SOW first
    """
    try:
        sow = workflow_service.perform(
            operation,
            sow_id,
            g.current_user.id,
            _comment_from_body(),
        )
        return jsonify({"sow": _sow_detail(sow)}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConcurrentTransitionError as e:
        return jsonify({"error": str(e)}), 409
    except SignatureAuthorityError as e:
        return jsonify({"error": str(e)}), 403
    except WorkflowError as e:
        return jsonify({"error": str(e)}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to %s SOW %s", operation, sow_id)
        return jsonify({"error": "Internal server error"}), 500


@sows_bp.post("/<int:sow_id>/submit")
@require_auth
@require_operation("submit")
def submit_sow_route(sow_id: int):
    return _run_workflow_action(sow_id, "submit")


@sows_bp.post("/<int:sow_id>/ops-approve")
@require_auth
@require_operation("ops_approve")
def ops_approve_route(sow_id: int):
    return _run_workflow_action(sow_id, "ops_approve")


@sows_bp.post("/<int:sow_id>/supplier-accept")
@require_auth
@require_operation("supplier_accept")
def supplier_accept_route(sow_id: int):
    return _run_workflow_action(sow_id, "supplier_accept")


@sows_bp.post("/<int:sow_id>/supplier-reject")
@require_auth
@require_operation("supplier_reject")
def supplier_reject_route(sow_id: int):
    return _run_workflow_action(sow_id, "supplier_reject")


@sows_bp.post("/<int:sow_id>/financial-approve")
@require_auth
@require_operation("financial_approve")
def financial_approve_route(sow_id: int):
    return _run_workflow_action(sow_id, "financial_approve")


@sows_bp.post("/<int:sow_id>/financial-reject")
@require_auth
@require_operation("financial_reject")
def financial_reject_route(sow_id: int):
    return _run_workflow_action(sow_id, "financial_reject")
