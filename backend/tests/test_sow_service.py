"""
SOW drafting tests: creation, validation and the dashboard listing.
"""

from datetime import date

import pytest
from sqlalchemy import BigInteger

from app.models import SOW, Milestone, SignatureAuthorityLimit
from app.services import sow_service, workflow_service
from app.validation import MAX_AMOUNT_CENTS, NotFoundError, ValidationError, normalize_comment, parse_cents


class TestCreateSow:

    def test_total_is_milestone_sum(self, db_session, hiring_manager, vendor):
        sow = sow_service.create_sow(
            {
                "title": "Data platform",
                "template_type": "T_M",
                "language": "en",
                "effective_date": "2026-03-01",
                "end_date": "2026-09-30",
                "vendor_id": vendor.id,
                "milestones": [
                    {"title": "Discovery", "amount_cents": 1_250_000, "acceptance_method": "Sign-off"},
                    {"title": "Build", "amount_cents": "3750000", "recurring": True, "due_date": "2026-06-30"},
                ],
            },
            created_by_user_id=hiring_manager.id,
        )

        assert sow.status == "DRAFT"
        assert sow.total_value_cents == 5_000_000
        assert sow.template_type == "T_M"
        assert sow.effective_date == date(2026, 3, 1)
        assert sow.created_by_user_id == hiring_manager.id
        assert sow.submitted_by_user_id == hiring_manager.id
        assert [(m.title, m.position) for m in sow.milestones] == [("Discovery", 0), ("Build", 1)]
        assert sow.milestones[1].recurring is True
        assert sow.milestones[1].due_date == date(2026, 6, 30)

    def test_no_milestones_means_no_value(self, db_session, hiring_manager):
        sow = sow_service.create_sow({"title": "Placeholder"}, created_by_user_id=hiring_manager.id)
        assert sow.total_value_cents is None
        assert sow.milestones == []
        assert workflow_service.get_eligible_financial_approvers(sow.total_value_cents) == []

    def test_template_type_defaults(self, db_session, hiring_manager):
        sow = sow_service.create_sow({"title": "x", "template_type": ""}, created_by_user_id=hiring_manager.id)
        assert sow.template_type == "MANAGED_PROJECT"

    def test_blank_optional_text_stored_as_null(self, db_session, hiring_manager):
        sow = sow_service.create_sow(
            {"title": "x", "cost_center": "  ", "effective_date": ""},
            created_by_user_id=hiring_manager.id,
        )
        assert sow.cost_center is None
        assert sow.effective_date is None

    @pytest.mark.parametrize(
        "payload,message",
        [
            ({}, "Missing required fields: title"),
            ({"title": "   "}, "title cannot be blank"),
            ({"title": "x", "status": "ACTIVE"}, "Field not allowed: status"),
            ({"title": "x", "total_value_cents": 1}, "Field not allowed: total_value_cents"),
            ({"title": "x", "template_type": "FIXED_BID"}, "template_type must be one of"),
            ({"title": "x", "language": "xx"}, "language must be one of"),
            ({"title": "x", "effective_date": "next week"}, "effective_date must be an ISO-8601 date"),
            ({"title": "x", "effective_date": "2026-05-01", "end_date": "2026-04-30"}, "end_date cannot be before"),
            ({"title": "x", "milestones": {"title": "m"}}, "milestones must be a list"),
        ],
    )
    def test_rejects_bad_header(self, db_session, hiring_manager, payload, message):
        with pytest.raises(ValidationError, match=message):
            sow_service.create_sow(payload, created_by_user_id=hiring_manager.id)

    @pytest.mark.parametrize(
        "milestone,message",
        [
            ({"title": "m", "amount_cents": 0}, r"milestones\[0\]: amount_cents must be > 0"),
            ({"title": "m", "amount_cents": -5}, r"milestones\[0\]: amount_cents must be >= 0"),
            ({"title": "m", "amount_cents": 12.5}, r"milestones\[0\]: amount_cents must be an integer"),
            ({"title": "m", "amount_cents": "1e5"}, r"milestones\[0\]: amount_cents must be an integer"),
            ({"amount_cents": 100}, r"milestones\[0\]: Missing required fields: title"),
            ({"title": "m", "amount_cents": 100, "acceptance_method": "Handshake"}, "acceptance_method must be one of"),
        ],
    )
    def test_rejects_bad_milestone(self, db_session, hiring_manager, milestone, message):
        with pytest.raises(ValidationError, match=message):
            sow_service.create_sow(
                {"title": "x", "milestones": [milestone]},
                created_by_user_id=hiring_manager.id,
            )
        assert db_session.query(Milestone).count() == 0

    def test_unknown_vendor(self, db_session, hiring_manager):
        with pytest.raises(NotFoundError):
            sow_service.create_sow({"title": "x", "vendor_id": 31337}, created_by_user_id=hiring_manager.id)

    def test_payload_must_be_object(self, db_session, hiring_manager):
        with pytest.raises(ValidationError):
            sow_service.create_sow(None, created_by_user_id=hiring_manager.id)

    def test_total_at_maximum_is_stored(self, db_session, hiring_manager):
        sow = sow_service.create_sow(
            {"title": "Enterprise programme", "milestones": [{"title": "All", "amount_cents": MAX_AMOUNT_CENTS}]},
            created_by_user_id=hiring_manager.id,
        )
        db_session.expire_all()
        assert db_session.get(SOW, sow.id).total_value_cents == MAX_AMOUNT_CENTS

    def test_total_over_maximum_rejected(self, db_session, hiring_manager):
        half = MAX_AMOUNT_CENTS // 2 + 1
        with pytest.raises(ValidationError, match="SOW total cannot exceed"):
            sow_service.create_sow(
                {
                    "title": "Too big",
                    "milestones": [
                        {"title": "First half", "amount_cents": half},
                        {"title": "Second half", "amount_cents": half},
                    ],
                },
                created_by_user_id=hiring_manager.id,
            )
        assert db_session.query(SOW).count() == 0
        assert db_session.query(Milestone).count() == 0

    @pytest.mark.parametrize(
        "column",
        [
            SOW.__table__.c.total_value_cents,
            Milestone.__table__.c.amount_cents,
            SignatureAuthorityLimit.__table__.c.limit_cents,
        ],
    )
    def test_money_columns_hold_maximum(self, column):
        assert isinstance(column.type, BigInteger)


class TestReadSide:

    def test_get_sow_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            sow_service.get_sow(5555)

    def test_list_filters_by_status(self, db_session, make_sow, hiring_manager):
        draft = make_sow(100, title="Still a draft")
        submitted = make_sow(200, title="Sent in")
        workflow_service.submit_sow(submitted.id, hiring_manager.id)

        all_ids = {s.id for s in sow_service.list_sows()}
        assert all_ids == {draft.id, submitted.id}
        assert [s.id for s in sow_service.list_sows(status="SUBMITTED")] == [submitted.id]
        assert sow_service.list_sows(status="ACTIVE") == []

    def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            sow_service.list_sows(status="ARCHIVED")

    def test_list_pages_and_counts(self, db_session, make_sow):
        ids = [make_sow(100, title=f"SOW {i}").id for i in range(3)]

        first = sow_service.list_sows(limit=2)
        second = sow_service.list_sows(limit=2, offset=2)
        assert len(first) == 2
        assert len(second) == 1
        assert {s.id for s in first + second} == set(ids)
        assert sow_service.count_sows() == 3
        assert sow_service.count_sows(status="ACTIVE") == 0

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"limit": 0}, "limit must be between"),
            ({"limit": sow_service.MAX_LIST_LIMIT + 1}, "limit must be between"),
            ({"offset": -1}, "offset must be"),
        ],
    )
    def test_list_rejects_bad_paging(self, db_session, kwargs, message):
        with pytest.raises(ValidationError, match=message):
            sow_service.list_sows(**kwargs)

    def test_detail_orders_approvals_by_gate(self, db_session, make_sow):
        sow = make_sow(100)
        workflow_service.ensure_approval_steps(sow.id)
        db_session.expire_all()

        detail = sow_service.get_sow(sow.id).to_dict(include_details=True)
        assert [a["step"] for a in detail["approvals"]] == ["OPS_REVIEW", "SUPPLIER_REVIEW", "FINANCIAL_APPROVAL"]
        assert detail["milestones"][0]["amount_cents"] == 100


class TestParseCents:

    def test_accepts_integer_strings(self):
        assert parse_cents("amount_cents", " 4200 ") == 4200

    @pytest.mark.parametrize("value", [True, 1.0, "1.00", "", None, "abc"])
    def test_rejects_non_integers(self, value):
        with pytest.raises(ValidationError):
            parse_cents("amount_cents", value)

    def test_upper_bound(self):
        with pytest.raises(ValidationError, match="cannot exceed"):
            parse_cents("amount_cents", 10_000_000_000)


class TestNormalizeComment:

    def test_trims_and_blanks(self):
        assert normalize_comment("  looks good  ") == "looks good"
        assert normalize_comment("   ") is None
        assert normalize_comment(None) is None

    @pytest.mark.parametrize("value", [5, ["x"], {"text": "x"}])
    def test_rejects_non_strings(self, value):
        with pytest.raises(ValidationError, match="comment must be a string"):
            normalize_comment(value)
