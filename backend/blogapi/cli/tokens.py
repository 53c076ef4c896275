"""Flask CLI commands for access-token housekeeping."""

from __future__ import annotations

import logging
from datetime import timedelta

import click
from flask.cli import with_appcontext

from blogapi.api.deps import get_token_service

LOGGER = logging.getLogger(__name__)


@click.group("tokens")
def tokens_cli() -> None:
    """Access-token store maintenance commands."""


@tokens_cli.command("purge-expired")
@click.option(
    "--grace-seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Keep records that expired less than this many seconds ago "
    "(defaults to TOKEN_PURGE_GRACE_SECONDS).",
)
@with_appcontext
def purge_expired(grace_seconds: int | None) -> None:
    """Delete access-token records whose expiry lies past the grace window."""
    grace = timedelta(seconds=grace_seconds) if grace_seconds is not None else None
    count = get_token_service().purge_expired(grace)
    LOGGER.debug("tokens.purge_expired.done", extra={"count": count})
    click.echo(f"Purged {count} expired access token(s).")


@tokens_cli.command("revoke")
@click.argument("token_id")
@with_appcontext
def revoke(token_id: str) -> None:
    """Revoke the access token TOKEN_ID (its ``jti``) and its refresh token."""
    get_token_service().revoke(token_id)
    click.echo(f"Revoked {token_id}.")
