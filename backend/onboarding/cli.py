# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/onboarding/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to onboarding (PowerShell: $env:FLASK_APP="onboarding").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default accounts for every role and the short-code counter.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role SUPERVISOR]
#   List users with role, supervisor and active status.
# - python -m flask users create --matricule AG002 --password "Password123!" --role AGENT --supervisor SUP001
#   Create a user (prompts if options are omitted).
# - python -m flask users assign-supervisor AG002 SUP001
#   Point an agent's reporting link at a supervisor (--clear to remove it).
#
# Short codes:
# - python -m flask codes status
#   Counter value, highest assigned code and the next code to be issued.
# - python -m flask codes resync
#   Move the counter past the highest assigned code.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role
from .models.enums import values_of
from .services.auth_service import create_user, assign_supervisor, PasswordValidationError
from .services import short_code_service
from .errors import OnboardingError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', 'default_password', default='Password123!', help='Password for the default accounts')
@with_appcontext
def init_system(default_password):
    """
    Initialize the onboarding system: schema, default accounts and short-code counter.

    Creates:
    - Users: ADMIN001, SUP001 (SUPERVISOR), AG001 (AGENT reporting to SUP001),
      CC001 (CALL_CENTER_SUPERVISOR), DE001 (DATA_ENTRY_AGENT)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing onboarding system...")

    db.create_all()
    click.echo("PASS Schema ready")

    click.echo("\nUSERS Creating default users...")
    default_users = [
        ("ADMIN001", Role.ADMIN.value, None),
        ("SUP001", Role.SUPERVISOR.value, None),
        ("AG001", Role.AGENT.value, "SUP001"),
        ("CC001", Role.CALL_CENTER_SUPERVISOR.value, None),
        ("DE001", Role.DATA_ENTRY_AGENT.value, None),
    ]

    for matricule, role, supervisor_matricule in default_users:
        try:
            existing = db.session.query(User).filter_by(matricule=matricule).first()
            if existing:
                click.echo(f"WARN  User '{matricule}' already exists, skipping...")
                continue

            supervisor_id = None
            if supervisor_matricule:
                supervisor = db.session.query(User).filter_by(matricule=supervisor_matricule).first()
                supervisor_id = supervisor.id if supervisor else None

            create_user(matricule, default_password, role=role, supervisor_id=supervisor_id)
            click.echo(f"PASS Created user: {matricule} with role '{role}'")

        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{matricule}': {str(e)}")
        except ValueError as e:
            click.echo(f"FAIL Failed to create user '{matricule}': {str(e)}")

    seq = short_code_service.ensure_sequence()
    click.echo(f"\nPASS Short-code counter ready (next: {short_code_service.format_short_code(seq.next_value)})")

    click.echo("\n" + "="*60)
    click.echo("DONE Onboarding system initialized")
    click.echo("="*60)
    click.echo("\nSECURITY WARNING:")
    click.echo("   - Change all default passwords immediately in production!")
    click.echo("   - Password requirements: 8+ chars, uppercase, lowercase, digit, special char")
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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@click.option('--role', type=click.Choice(values_of(Role), case_sensitive=False), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role.upper())
    users = query.order_by(User.matricule.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Matricule':<15} {'Role':<25} {'Supervisor':<15} {'Active'}")
    click.echo("="*80)

    for user in users:
        supervisor = user.supervisor.matricule if user.supervisor else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.matricule:<15} {user.role:<25} {supervisor:<15} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--matricule', prompt=True, help='Matricule (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(values_of(Role), case_sensitive=False), prompt=True, help='Role')
@click.option('--affiliation', default=None, help='Team / zone label')
@click.option('--supervisor', 'supervisor_matricule', default=None, help='Supervisor matricule (agents)')
@with_appcontext
def create_user_cli(matricule, password, role, affiliation, supervisor_matricule):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    supervisor_id = None
    if supervisor_matricule:
        supervisor = db.session.query(User).filter_by(matricule=supervisor_matricule).first()
        if not supervisor:
            click.echo(f"FAIL Supervisor '{supervisor_matricule}' not found")
            return
        supervisor_id = supervisor.id

    try:
        user = create_user(
            matricule,
            password,
            role=role.upper(),
            affiliation=affiliation,
            supervisor_id=supervisor_id,
        )
        click.echo(f"PASS Created user: {user.matricule} (ID: {user.id}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")


@users_group.command('assign-supervisor')
@click.argument('matricule')
@click.argument('supervisor_matricule', required=False)
@click.option('--clear', is_flag=True, help='Remove the reporting link')
@with_appcontext
def assign_supervisor_cli(matricule, supervisor_matricule, clear):
    """Set the supervisor of a user."""
    user = db.session.query(User).filter_by(matricule=matricule).first()
    if not user:
        click.echo(f"FAIL User '{matricule}' not found")
        return

    supervisor_id = None
    if not clear:
        if not supervisor_matricule:
            click.echo("FAIL Give a supervisor matricule or --clear")
            return
        supervisor = db.session.query(User).filter_by(matricule=supervisor_matricule).first()
        if not supervisor:
            click.echo(f"FAIL Supervisor '{supervisor_matricule}' not found")
            return
        supervisor_id = supervisor.id

    try:
        assign_supervisor(user.id, supervisor_id)
    except ValueError as e:
        click.echo(f"FAIL {str(e)}")
        return

    if supervisor_id is None:
        click.echo(f"PASS Cleared supervisor of '{matricule}'")
    else:
        click.echo(f"PASS '{matricule}' now reports to '{supervisor_matricule}'")


# =============================================================================
# SHORT CODES
# =============================================================================

@click.group('codes')
def codes_group():
    """Short-code counter inspection and repair."""


@codes_group.command('status')
@with_appcontext
def codes_status():
    """Show the counter, the highest assigned code and the next code."""
    status = short_code_service.sequence_status()
    click.echo(f"Counter next value : {status['next_value'] if status['next_value'] is not None else '(not seeded)'}")
    click.echo(f"Highest assigned   : {status['current_max'] if status['current_max'] is not None else '(none)'}")
    click.echo(f"Floor / width      : {status['floor']} / {status['width']}")
    try:
        click.echo(f"Next code          : {short_code_service.peek_next_short_code()}")
    except OnboardingError as e:
        click.echo(f"FAIL {e.message}")
    if status["in_sync"]:
        click.echo("PASS Counter is ahead of every assigned code")
    else:
        click.echo("WARN Counter is behind the highest assigned code; run 'flask codes resync'")


@codes_group.command('resync')
@with_appcontext
def codes_resync():
    """Move the counter past the highest assigned code (never backwards)."""
    next_value = short_code_service.resync_sequence()
    click.echo(f"PASS Counter resynced (next value: {next_value})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(codes_group)
