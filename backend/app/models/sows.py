from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


# SOW statuses in pipeline order (workflow_service relies on this ordering).
# FINANCIALLY_APPROVED is reserved: no transition sets it, financial approval
# moves a SOW straight to ACTIVE.
SOW_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "OPS_APPROVED",
    "SUPPLIER_REJECTED",
    "PENDING_FINANCIAL_APPROVAL",
    "FINANCIALLY_APPROVED",
    "FINANCIALLY_REJECTED",
    "ACTIVE",
)

TEMPLATE_TYPES = ("MANAGED_PROJECT", "MANAGED_SERVICE", "T_M")
LANGUAGES = ("en", "es", "fr", "de", "other")
ACCEPTANCE_METHODS = ("Sign-off", "Test report", "Demo", "Documentation")

APPROVAL_STEPS = ("OPS_REVIEW", "SUPPLIER_REVIEW", "FINANCIAL_APPROVAL")
APPROVAL_STATUSES = ("PENDING", "APPROVED", "REJECTED")


def _date_iso(value):
    return value.isoformat() if value else None


class Vendor(db.Model):
    """Supplier company a SOW is placed with."""
    __tablename__ = "vendors"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_vendors_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "email": self.email,
        }


class SOW(db.Model):
    """
    Statement of Work.

    LIFECYCLE (see workflow_service):
        DRAFT -> SUBMITTED -> OPS_APPROVED -> PENDING_FINANCIAL_APPROVAL -> ACTIVE
                                          \\-> SUPPLIER_REJECTED           \\-> FINANCIALLY_REJECTED

    RULES:
    - Created in DRAFT by a Hiring Manager (sow_service.create_sow)
    - Status only changes through workflow_service transitions
    - total_value_cents is the milestone sum at creation time and is never
      recomputed; NULL means no milestones were supplied
    - version_id guards against two approvers acting on the same SOW at once
    """
    __tablename__ = "sows"
    __table_args__ = (
        db.Index("ix_sows_status_updated", "status", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    template_type = db.Column(db.String(32), nullable=False, default="MANAGED_PROJECT")
    language = db.Column(db.String(16), nullable=True)

    effective_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    cost_center = db.Column(db.String(64), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    out_of_scope = db.Column(db.Text, nullable=True)
    assumptions = db.Column(db.Text, nullable=True)

    client_poc_name = db.Column(db.String(255), nullable=True)
    client_poc_email = db.Column(db.String(255), nullable=True)

    total_value_cents = db.Column(db.BigInteger, nullable=True)
    payment_terms = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default="DRAFT", index=True)

    # Owning Hiring Manager; set again on submit
    submitted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    vendor = db.relationship("Vendor", backref=db.backref("sows", lazy=True))
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    milestones = db.relationship(
        "Milestone",
        backref="sow",
        lazy=True,
        order_by="Milestone.position",
        cascade="all, delete-orphan",
    )
    approvals = db.relationship("SOWApproval", backref="sow", lazy=True, cascade="all, delete-orphan")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "template_type": self.template_type,
            "language": self.language,
            "effective_date": _date_iso(self.effective_date),
            "end_date": _date_iso(self.end_date),
            "cost_center": self.cost_center,
            "location": self.location,
            "out_of_scope": self.out_of_scope,
            "assumptions": self.assumptions,
            "client_poc_name": self.client_poc_name,
            "client_poc_email": self.client_poc_email,
            "total_value_cents": self.total_value_cents,
            "payment_terms": self.payment_terms,
            "status": self.status,
            "submitted_by_user_id": self.submitted_by_user_id,
            "submitted_by_email": self.submitted_by.email if self.submitted_by else None,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_details:
            data["milestones"] = [m.to_dict() for m in self.milestones]
            order = {step: i for i, step in enumerate(APPROVAL_STEPS)}
            data["approvals"] = [
                a.to_dict() for a in sorted(self.approvals, key=lambda a: order.get(a.step, len(order)))
            ]
        return data


class Milestone(db.Model):
    """Billable deliverable on a SOW. Immutable once the SOW is created."""
    __tablename__ = "milestones"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_milestones_amount_positive"),
        db.Index("ix_milestones_sow_position", "sow_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sow_id = db.Column(db.Integer, db.ForeignKey("sows.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    recurring = db.Column(db.Boolean, nullable=False, default=False)
    acceptance_criteria = db.Column(db.Text, nullable=True)
    acceptance_method = db.Column(db.String(32), nullable=True)  # Sign-off, Test report, Demo, Documentation

    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sow_id": self.sow_id,
            "title": self.title,
            "amount_cents": self.amount_cents,
            "due_date": _date_iso(self.due_date),
            "recurring": self.recurring,
            "acceptance_criteria": self.acceptance_criteria,
            "acceptance_method": self.acceptance_method,
            "position": self.position,
        }


class SOWApproval(db.Model):
    """
    One approval gate of one SOW.

    At most one row per (sow_id, step). Rows are written by upsert only:
    a step's row appears (PENDING) when the previous gate is passed and is
    set to APPROVED or REJECTED once, by the actor of that step.
    """
    __tablename__ = "sow_approvals"
    __table_args__ = (
        db.UniqueConstraint("sow_id", "step", name="uq_sow_approvals_sow_step"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sow_id = db.Column(db.Integer, db.ForeignKey("sows.id"), nullable=False, index=True)

    step = db.Column(db.String(32), nullable=False)  # OPS_REVIEW, SUPPLIER_REVIEW, FINANCIAL_APPROVAL
    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, APPROVED, REJECTED

    # One actor column per step type
    ops_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    supplier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    financial_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    acted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    ops_approver = db.relationship("User", foreign_keys=[ops_approver_id])
    supplier_user = db.relationship("User", foreign_keys=[supplier_user_id])
    financial_approver = db.relationship("User", foreign_keys=[financial_approver_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sow_id": self.sow_id,
            "step": self.step,
            "status": self.status,
            "ops_approver_id": self.ops_approver_id,
            "supplier_user_id": self.supplier_user_id,
            "financial_approver_id": self.financial_approver_id,
            "acted_at": to_utc_z(self.acted_at) if self.acted_at else None,
            "comment": self.comment,
        }


class SignatureAuthorityLimit(db.Model):
    """
    Maximum SOW value an APPROVER may financially approve.

    Administered through the CLI; the workflow engine only reads it.
    """
    __tablename__ = "signature_authority_limits"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_signature_authority_limits_user"),
        db.Index("ix_signature_authority_limits_amount", "limit_cents"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    limit_cents = db.Column(db.BigInteger, nullable=False)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("signature_authority_limit", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "limit_cents": self.limit_cents,
            "updated_at": to_utc_z(self.updated_at),
        }
