"""Flask CLI commands for provisioning principals and managing their sessions."""

from __future__ import annotations

import click
from flask.cli import with_appcontext

from silentauth.core.security import get_components
from silentauth.services._shared.errors import ConflictError, NotFoundError
from silentauth.services._shared.ports.session_store import RevocationReason
from silentauth.services.credentials.dto import PrincipalOut


def _lookup(email: str) -> PrincipalOut:
    try:
        return get_components().principals.get_by_email(email)
    except NotFoundError as exc:
        raise click.ClickException(f"No principal with email {email!r}") from exc


@click.group("principals")
def principals_cli() -> None:
    """Provision and manage principals."""


@principals_cli.command("create")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, default="",
              help="Local password; leave empty for a federated-only principal.")
@click.option("--role", "roles", multiple=True, help="Authority to grant (repeatable).")
@with_appcontext
def create_command(email: str, password: str, roles: tuple[str, ...]) -> None:
    """Create a principal identified by EMAIL."""
    try:
        principal = get_components().principals.create(email, password=password or None, roles=roles or None)
    except ConflictError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created principal {principal.id} <{principal.email}> roles={','.join(principal.roles)}")


@principals_cli.command("disable")
@click.argument("email")
@with_appcontext
def disable_command(email: str) -> None:
    """Disable EMAIL and revoke all of its sessions."""
    security = get_components()
    try:
        principal = security.principals.set_enabled(email, False)
    except NotFoundError as exc:
        raise click.ClickException(f"No principal with email {email!r}") from exc
    revoked = security.session_store.revoke_all_for_principal(principal.id, RevocationReason.ADMIN)
    click.echo(f"Disabled {principal.email}; revoked {revoked} session(s)")


@principals_cli.command("enable")
@click.argument("email")
@with_appcontext
def enable_command(email: str) -> None:
    """Re-enable EMAIL."""
    try:
        principal = get_components().principals.set_enabled(email, True)
    except NotFoundError as exc:
        raise click.ClickException(f"No principal with email {email!r}") from exc
    click.echo(f"Enabled {principal.email}")


@click.group("sessions")
def sessions_cli() -> None:
    """Inspect and revoke sessions."""


@sessions_cli.command("list")
@click.argument("email")
@click.option("--all", "include_revoked", is_flag=True, help="Include revoked sessions.")
@with_appcontext
def list_command(email: str, include_revoked: bool) -> None:
    """List the sessions of EMAIL."""
    principal = _lookup(email)
    views = get_components().issuance.list_sessions(principal.id, include_revoked=include_revoked)
    if not views:
        click.echo("  (no sessions)")
        return
    for view in views:
        state = f"revoked ({view.revoked_reason})" if view.revoked else "live"
        click.echo(f"  {view.session_id}  created={view.created_at.isoformat()}  {state}")


@sessions_cli.command("revoke")
@click.argument("session_id")
@with_appcontext
def revoke_command(session_id: str) -> None:
    """Revoke SESSION_ID."""
    store = get_components().session_store
    if not store.revoke_session(session_id, RevocationReason.ADMIN):
        raise click.ClickException(f"Unknown session {session_id!r}")
    click.echo(f"Revoked {session_id}")


@sessions_cli.command("revoke-all")
@click.argument("email")
@with_appcontext
def revoke_all_command(email: str) -> None:
    """Revoke every session of EMAIL."""
    principal = _lookup(email)
    revoked = get_components().session_store.revoke_all_for_principal(principal.id, RevocationReason.ADMIN)
    click.echo(f"Revoked {revoked} session(s) of {principal.email}")
