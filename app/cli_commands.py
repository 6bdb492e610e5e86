"""
Flask CLI commands for operating the discount engine.

Commands:
- flask init-db: Create database tables
- flask create-user: Create a platform account
- flask issue-token: Print a bearer token for an existing user
- flask refresh-discount-status: Re-derive stored discount statuses
"""

import click
from app.database import db_session, create_tables
from app.exceptions import SaasError
from app.models import AppUser, UserRole


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables that do not exist yet."""
        create_tables()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-user')
    @click.option('--email', prompt=True, help='Account email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Account password')
    @click.option('--name', 'full_name', default=None, help='Full name')
    @click.option(
        '--role',
        type=click.Choice([r.value for r in UserRole]),
        default=UserRole.SHOP_OWNER.value,
        show_default=True,
        help='Platform role'
    )
    def create_user_command(email, password, full_name, role):
        """Create a shop owner, admin or customer account."""
        from app.services.auth_service import create_user

        try:
            user = create_user(db_session, email, password, full_name=full_name, role=role)
        except SaasError as e:
            click.echo(click.style(f'Error creating user: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('User created successfully!', fg='green', bold=True))
        click.echo(f'   Email: {user.email}')
        click.echo(f'   Role: {user.role}')
        click.echo(f'   ID: {user.id}')

    @app.cli.command('issue-token')
    @click.option('--email', required=True, help='Email of an existing user')
    @click.option('--hours', type=int, default=None, help='Token lifetime (defaults to JWT_EXPIRES_HOURS)')
    def issue_token_command(email, hours):
        """Print a bearer token for the given user."""
        from app.services.auth_service import issue_access_token

        user = db_session.query(AppUser).filter_by(email=email.strip().lower(), active=True).first()
        if not user:
            click.echo(click.style(f'No active user with email: {email}', fg='red'))
            raise SystemExit(1)

        click.echo(issue_access_token(user, expires_hours=hours))

    @app.cli.command('refresh-discount-status')
    @click.option('--owner-id', type=int, default=None, help='Limit the sweep to one shop owner')
    def refresh_discount_status_command(owner_id):
        """Re-derive the status of every non-paused discount from its dates."""
        from app.services.discount_status_service import refresh_discount_statuses

        try:
            updated = refresh_discount_statuses(db_session, owner_id=owner_id)
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

        click.echo(click.style(f'{updated} discount(s) updated.', fg='green'))
