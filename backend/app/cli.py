"""
cli.py — Operator commands registered on the Flask CLI.

    flask --app backend.app tokens cleanup
    flask --app backend.app tokens revoke-user 42
    flask --app backend.app roles grant alice ROLE_ADMIN
"""

from __future__ import annotations

import click
from flask import Flask
from flask.cli import AppGroup
from sqlalchemy import select

from backend.app.extensions import db

tokens_cli = AppGroup("tokens", help="Refresh-token maintenance.")
roles_cli = AppGroup("roles", help="Role administration.")


@tokens_cli.command("cleanup")
def cleanup_command() -> None:
    """Delete expired refresh tokens now, outside the schedule."""
    from backend.app.services.cleanup_service import purge_expired_tokens

    deleted = purge_expired_tokens(db.session)
    click.echo(f"Deleted {deleted} expired refresh tokens.")


@tokens_cli.command("revoke-user")
@click.argument("user_id", type=int)
def revoke_user_command(user_id: int) -> None:
    """Revoke every active refresh token of USER_ID."""
    from backend.app.services.token_service import revoke_all_for_user

    revoked = revoke_all_for_user(user_id, db.session)
    db.session.commit()
    click.echo(f"Revoked {revoked} refresh tokens for user {user_id}.")


@roles_cli.command("grant")
@click.argument("username")
@click.argument("role_name")
def grant_role_command(username: str, role_name: str) -> None:
    """Give USERNAME the role ROLE_NAME (created if missing)."""
    from backend.app.models.role import ROLE_LEVELS
    from backend.app.models.user import User
    from backend.app.services.auth_service import get_or_create_role

    if role_name not in ROLE_LEVELS:
        raise click.BadParameter(
            f"unknown role; expected one of {', '.join(sorted(ROLE_LEVELS))}",
            param_hint="ROLE_NAME",
        )

    user = db.session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if user is None:
        raise click.ClickException(f"No user named {username!r}.")

    role = get_or_create_role(role_name, db.session)
    if role not in user.roles:
        user.roles.append(role)
    db.session.commit()
    click.echo(f"{username} now has roles: {', '.join(user.role_names)}")


def register_cli(app: Flask) -> None:
    app.cli.add_command(tokens_cli)
    app.cli.add_command(roles_cli)
