# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/passpilot/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (dev/test; production uses `flask db upgrade`).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system create-superadmin --email sa@school.test --password "Password123!" [--school-name "District Office"]
#   One-time bootstrap of the first superadmin and its home school.
#
# School management (MULTI-TENANT):
# - python -m flask schools list
# - python -m flask schools create --name "Lincoln Elementary" --seats 50
#
# Maintenance:
# - python -m flask maintenance expire-passes --hours 8
#   Mark active passes older than N hours as expired.
# - python -m flask maintenance cleanup-rate-limits --older-than-minutes 60
#   Delete old rate-limit buckets.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import School, User
from .models.auth import ROLE_SUPERADMIN
from .services import pass_service, rate_limit_service, school_service, user_admin_service
from .validation import PassPilotError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system create-superadmin' next.")


@system_group.command('create-superadmin')
@click.option('--email', required=True)
@click.option('--password', required=True, help='Must meet password strength rules')
@click.option('--school-name', default='District Office', show_default=True,
              help='Home school for the superadmin (created if no school has this name)')
@with_appcontext
def create_superadmin(email, password, school_name):
    """
    Bootstrap the first superadmin.

    Refuses to run once any superadmin exists; further superadmins are
    promoted through /api/sa.
    """
    if db.session.query(User).filter_by(role=ROLE_SUPERADMIN).first():
        raise click.ClickException("A superadmin already exists")

    school = db.session.query(School).filter_by(name=school_name).first()
    try:
        if school is None:
            school = school_service.create_school({"name": school_name})
            click.echo(f"PASS Created school: {school.name} (ID: {school.id})")
        user = user_admin_service.create_user(
            email=email,
            password=password,
            role=ROLE_SUPERADMIN,
            school_id=school.id,
        )
    except PassPilotError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created superadmin {user.email} (ID: {user.id}) in school {school.id}")


@click.group('schools')
def schools_group():
    """School (tenant) management commands."""


@schools_group.command('list')
@with_appcontext
def list_schools():
    """List all schools."""
    schools = school_service.list_schools()

    if not schools:
        click.echo("No schools found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<36} {'Active':<8} {'Seats':<10} {'Users'}")
    click.echo("="*72)

    for school in schools:
        user_count = db.session.query(User).filter_by(school_id=school.id).count()
        active_str = "Yes" if school.active else "No"
        seats = f"{school_service.seats_in_use(school.id, False)}/{school.seats_allowed}"
        click.echo(f"{school.id:<5} {school.name:<36} {active_str:<8} {seats:<10} {user_count}")

    click.echo("="*72 + "\n")


@schools_group.command('create')
@click.option('--name', required=True, help='School name')
@click.option('--seats', type=int, default=50, show_default=True, help='Licensed seats')
@with_appcontext
def create_school_cli(name, seats):
    """Create a new school (tenant)."""
    try:
        school = school_service.create_school({"name": name, "seatsAllowed": seats})
    except PassPilotError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created school: {school.name} (ID: {school.id}, seats: {school.seats_allowed})")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('expire-passes')
@click.option('--hours', type=float, required=True, help='Age after which an active pass expires')
@with_appcontext
def expire_passes_cli(hours):
    """
    Mark stale active passes as expired.

    Nothing runs this automatically; schedule it explicitly if wanted.
    """
    if hours <= 0:
        raise click.BadParameter("hours must be positive", param_hint="--hours")
    expired = pass_service.expire_stale_passes(timedelta(hours=hours))
    click.echo(f"Expired {expired} passes older than {hours:g} hours.")


@maintenance_group.command('cleanup-rate-limits')
@click.option('--older-than-minutes', type=int, default=60, show_default=True)
@with_appcontext
def cleanup_rate_limits_cli(older_than_minutes):
    """Delete rate-limit buckets whose window started long ago."""
    deleted = rate_limit_service.cleanup(timedelta(minutes=older_than_minutes))
    click.echo(f"Deleted {deleted} rate-limit buckets older than {older_than_minutes} minutes.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(schools_group)  # Multi-tenant school management
    app.cli.add_command(maintenance_group)
