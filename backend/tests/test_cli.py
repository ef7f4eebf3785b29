"""
CLI command tests (flask system / users / limits / workflow).
"""

from app.models import SOW, SOWApproval, SignatureAuthorityLimit, User, Vendor


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "DONE System initialized" in result.output

    assert db_session.query(User).count() == 5
    assert db_session.query(Vendor).filter_by(code="SUP-001").count() == 1
    sample = db_session.query(SOW).one()
    assert sample.status == "DRAFT"
    assert sample.total_value_cents == 7_500_000
    limits = sorted(l.limit_cents for l in db_session.query(SignatureAuthorityLimit))
    assert limits == [5_000_000, 20_000_000]

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "already exists" in result.output
    assert db_session.query(User).count() == 5
    assert db_session.query(SOW).count() == 1


def test_limits_set_and_list(app, db_session, approver_50k):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["limits", "set", "--email", approver_50k.email, "--amount-cents", "7500000"])
    assert "PASS" in result.output
    db_session.expire_all()
    assert db_session.query(SignatureAuthorityLimit).filter_by(user_id=approver_50k.id).one().limit_cents == 7_500_000

    result = runner.invoke(args=["limits", "list"])
    assert "$75,000.00" in result.output

    result = runner.invoke(args=["limits", "set", "--email", "ghost@test.local", "--amount-cents", "1"])
    assert "FAIL" in result.output


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--name", "Riley", "--email", "riley@test.local",
        "--password", "Password123!", "--role", "SUPPLIER",
    ])
    assert "PASS Created user: riley@test.local" in result.output

    result = runner.invoke(args=["users", "list"])
    assert "riley@test.local" in result.output
    assert "SUPPLIER" in result.output


def test_workflow_commands(app, db_session, make_sow, hiring_manager, ops_user, approver_50k):
    runner = app.test_cli_runner()
    sow = make_sow(4_000_000)

    result = runner.invoke(args=["workflow", "ensure-steps", str(sow.id)])
    assert "OPS_REVIEW" in result.output and "FINANCIAL_APPROVAL" in result.output

    result = runner.invoke(args=["workflow", "eligible", str(sow.id)])
    assert approver_50k.email in result.output

    result = runner.invoke(args=["workflow", "act", str(sow.id), "ops_approve", "--actor-email", hiring_manager.email])
    assert "FAIL Only OPS can approve." in result.output

    result = runner.invoke(args=["workflow", "act", str(sow.id), "submit", "--actor-email", hiring_manager.email])
    assert "PASS SOW" in result.output and "SUBMITTED" in result.output

    result = runner.invoke(args=["workflow", "ensure-steps", "999999"])
    assert "FAIL" in result.output


def test_workflow_act_trims_comment(app, db_session, make_sow, hiring_manager, ops_user):
    runner = app.test_cli_runner()
    trimmed = make_sow(100, title="Trimmed")
    blank = make_sow(200, title="Blank")

    for sow, comment in ((trimmed, "  looks good  "), (blank, "   ")):
        result = runner.invoke(args=["workflow", "act", str(sow.id), "submit", "--actor-email", hiring_manager.email])
        assert "PASS SOW" in result.output
        result = runner.invoke(
            args=["workflow", "act", str(sow.id), "ops_approve", "--actor-email", ops_user.email, "--comment", comment]
        )
        assert "OPS_APPROVED" in result.output, result.output

    db_session.expire_all()
    comments = {
        a.sow_id: a.comment
        for a in db_session.query(SOWApproval).filter_by(step="OPS_REVIEW")
    }
    assert comments == {trimmed.id: "looks good", blank.id: None}
