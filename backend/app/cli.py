# Overview: Flask CLI command groups for bootstrap, inspection, and workflow maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent demo seed: one user per role, two approvers with signature
#   limits ($50k / $200k), vendor SUP-001 and one DRAFT SOW.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Sam Ops" --email ops2@vms.local --role OPS_TEAM
#
# Signature authority:
# - python -m flask limits list
# - python -m flask limits set --email approver50@vms.local --amount-cents 5000000
#
# Workflow:
# - python -m flask workflow ensure-steps 1
#   Create any missing approval rows (PENDING) for SOW 1.
# - python -m flask workflow eligible 1
#   Show approvers whose limit covers SOW 1.
# - python -m flask workflow act 1 ops_approve --actor-email ops@vms.local --comment "ok"
#   Run a workflow operation as a user (role is checked).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import SOW, SignatureAuthorityLimit, User, Vendor
from .models.auth import VALID_ROLES
from .services import permission_service, sow_service, workflow_service
from .services.auth_service import create_user, normalize_email, PasswordValidationError
from .services.permission_service import PermissionDeniedError
from .services.workflow_service import WorkflowError
from .validation import NotFoundError, ValidationError, normalize_comment


DEFAULT_PASSWORD = "Password123!"

DEMO_USERS = [
    ("Alex Hiring", "hm@vms.local", "HIRING_MANAGER"),
    ("Sam Ops", "ops@vms.local", "OPS_TEAM"),
    ("Jordan Approver", "approver50@vms.local", "APPROVER"),
    ("Morgan Senior Approver", "approver200@vms.local", "APPROVER"),
    ("Taylor Supplier", "supplier@vms.local", "SUPPLIER"),
]

DEMO_LIMITS = {
    "approver50@vms.local": 5_000_000,
    "approver200@vms.local": 20_000_000,
}

DEMO_SOW_TITLE = "Sample SOW - IT Implementation"


def _format_cents(cents: int | None) -> str:
    if cents is None:
        return "-"
    return f"${cents / 100:,.2f}"


def _set_limit(user: User, amount_cents: int) -> SignatureAuthorityLimit:
    limit = db.session.query(SignatureAuthorityLimit).filter_by(user_id=user.id).first()
    if limit is None:
        limit = SignatureAuthorityLimit(user_id=user.id, limit_cents=amount_cents)
        db.session.add(limit)
    else:
        limit.limit_cents = amount_cents
    db.session.commit()
    return limit


def _user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Seed demo users, signature limits, a vendor and a DRAFT SOW.

    Safe to re-run: existing rows are kept, limits are reset to the demo values.
    SECURITY: Change passwords immediately outside development!
    """
    click.echo("START Initializing SOW approval system...")

    click.echo("\nUSERS Creating demo users...")
    users = {}
    for name, email, role in DEMO_USERS:
        existing = _user_by_email(email)
        if existing:
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            users[email] = existing
            continue
        try:
            users[email] = create_user(name=name, email=email, password=DEFAULT_PASSWORD, role=role)
            click.echo(f"PASS Created user: {email} ({role})")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user '{email}': {e}")

    click.echo("\nLIMITS Setting signature authority limits...")
    for email, amount_cents in DEMO_LIMITS.items():
        if email in users:
            _set_limit(users[email], amount_cents)
            click.echo(f"PASS {email}: {_format_cents(amount_cents)}")

    vendor = db.session.query(Vendor).filter_by(code="SUP-001").first()
    if vendor is None:
        vendor = Vendor(name="Acme Staffing Inc.", code="SUP-001", email="contracts@acme.example.com")
        db.session.add(vendor)
        db.session.commit()
        click.echo(f"\nPASS Created vendor: {vendor.name} ({vendor.code})")

    hm = users.get("hm@vms.local")
    sample = db.session.query(SOW).filter_by(title=DEMO_SOW_TITLE).first()
    if sample is None and hm is not None:
        sample = sow_service.create_sow(
            {
                "title": DEMO_SOW_TITLE,
                "description": "Draft statement of work for Phase 1 implementation.",
                "template_type": "MANAGED_PROJECT",
                "vendor_id": vendor.id,
                "milestones": [
                    {"title": "Phase 1 implementation", "amount_cents": 7_500_000, "acceptance_method": "Sign-off"},
                ],
            },
            created_by_user_id=hm.id,
        )
        click.echo(f"PASS Created sample SOW {sample.id}: {sample.title} ({_format_cents(sample.total_value_cents)})")

    click.echo("\n" + "=" * 60)
    click.echo("DONE System initialized")
    click.echo("=" * 60)
    click.echo(f"\nDemo credentials (password for all: {DEFAULT_PASSWORD}):")
    for _, email, role in DEMO_USERS:
        click.echo(f"   {role:<16} -> {email}")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to seed.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Name':<26} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("=" * 90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name or '-':<26} {user.email:<30} {active_str:<8} {user.role}")

    click.echo("=" * 90 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(VALID_ROLES), prompt=True, help='Workflow role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a new user.

    Password must have 8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.email} with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


# =============================================================================
# SIGNATURE AUTHORITY COMMANDS
# =============================================================================

@click.group('limits')
def limits_group():
    """Signature authority limit administration."""


@limits_group.command('list')
@with_appcontext
def list_limits():
    """List signature authority limits, smallest first."""
    rows = (
        db.session.query(SignatureAuthorityLimit, User)
        .join(User, User.id == SignatureAuthorityLimit.user_id)
        .order_by(SignatureAuthorityLimit.limit_cents.asc())
        .all()
    )
    if not rows:
        click.echo("No signature authority limits configured.")
        return

    for limit, user in rows:
        click.echo(f"{user.id:<5} {user.email:<30} {_format_cents(limit.limit_cents)}")


@limits_group.command('set')
@click.option('--email', required=True, help='Approver email')
@click.option('--amount-cents', type=click.IntRange(min=0), required=True, help='Limit in cents')
@with_appcontext
def set_limit_cli(email, amount_cents):
    """Create or update an approver's signature authority limit."""
    user = _user_by_email(email)
    if user is None:
        click.echo(f"FAIL User '{email}' not found")
        return
    if user.role != "APPROVER":
        click.echo(f"WARN  {user.email} has role {user.role}; only APPROVER users act on financial approval")

    _set_limit(user, amount_cents)
    click.echo(f"PASS {user.email}: {_format_cents(amount_cents)}")


# =============================================================================
# WORKFLOW COMMANDS
# =============================================================================

@click.group('workflow')
def workflow_group():
    """SOW workflow inspection and repair."""


@workflow_group.command('ensure-steps')
@click.argument('sow_id', type=int)
@with_appcontext
def ensure_steps_cli(sow_id):
    """Create any missing approval rows for a SOW as PENDING."""
    try:
        approvals = workflow_service.ensure_approval_steps(sow_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return
    for approval in approvals:
        click.echo(f"{approval.step:<20} {approval.status}")


@workflow_group.command('eligible')
@click.argument('sow_id', type=int)
@with_appcontext
def eligible_cli(sow_id):
    """List approvers whose signature authority covers a SOW."""
    try:
        sow = sow_service.get_sow(sow_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return

    approvers = workflow_service.get_eligible_financial_approvers(sow.total_value_cents)
    click.echo(f"SOW {sow.id} value: {_format_cents(sow.total_value_cents)}")
    if not approvers:
        click.echo("No eligible approvers.")
    for approver in approvers:
        click.echo(f"   {approver['email']:<30} {_format_cents(approver['limit_cents'])}")


@workflow_group.command('act')
@click.argument('sow_id', type=int)
@click.argument('operation', type=click.Choice(list(workflow_service.OPERATIONS)))
@click.option('--actor-email', required=True, help='User performing the operation')
@click.option('--comment', default=None, help='Optional comment')
@with_appcontext
def act_cli(sow_id, operation, actor_email, comment):
    """Run a workflow operation on behalf of a user."""
    user = _user_by_email(actor_email)
    if user is None:
        click.echo(f"FAIL User '{actor_email}' not found")
        return

    try:
        permission_service.check_operation(user, operation, resource=f"cli:workflow act {sow_id}")
        sow = workflow_service.perform(operation, sow_id, user.id, normalize_comment(comment))
    except (PermissionDeniedError, WorkflowError, NotFoundError, ValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS SOW {sow.id} is now {sow.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(limits_group)
    app.cli.add_command(workflow_group)
