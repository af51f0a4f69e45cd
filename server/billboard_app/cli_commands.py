"""
CLI commands for app management (e.g. create first admin).
Run from the server directory: flask --app run:app create-admin
Or, with FLASK_APP=run:app: flask create-admin
"""

import click

from .errors import WorkflowError
from .models import ROLE_ADMIN, Account
from .services.session_management_service import SessionManagementService
from .services.user_admin_service import UserAdminService


@click.command("create-admin")
def create_admin_cmd():
    """Create the first admin user (when no admins exist yet)."""
    existing = Account.query.filter_by(Role=ROLE_ADMIN).first()
    if existing:
        click.echo("An admin already exists. Log in as that admin to manage staff accounts.")
        raise SystemExit(1)

    click.echo("Create the first admin user.\n")

    email = click.prompt("Email", type=str)
    name = click.prompt("Name", type=str)
    password = click.prompt("Password", type=str, hide_input=True, confirmation_prompt=True)

    try:
        account = UserAdminService.create_admin(email, name, password)
    except WorkflowError as e:
        click.echo(f"Error creating admin: {e.message}")
        raise SystemExit(1)

    click.echo(f"Admin created successfully. AccountID={account.AccountID}.")
    click.echo("You can log in through POST /auth/login with portal=admin.")


@click.command("cleanup-sessions")
def cleanup_sessions_cmd():
    """Deactivate session rows that are past their expiry."""
    count = SessionManagementService.cleanup_expired_sessions()
    click.echo(f"Cleaned up {count} expired session(s).")
