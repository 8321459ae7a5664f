"""CLI interface for scim-provision using Click.

Replays a single hook event against the directory, which is handy for
backfilling users the hook missed or for checking a new token.
"""

import dataclasses
import json
import logging
import sys
from typing import Optional, Tuple

import click

from . import __version__
from .config import USER_LOOKUP_COLLECTIONS, ConfigError, HookConfig
from .hook import HookContext, provision_user


def _colorize(text: str, color: str) -> str:
    """Colorize text for terminals; plain text when stdout is not a TTY."""
    if not sys.stdout.isatty():
        return text
    return click.style(text, fg=color)


def _print_error(message: str):
    click.echo(_colorize(f"❌ {message}", "red"))


def _print_success(message: str):
    click.echo(_colorize(f"✅ {message}", "green"))


def _parse_group_names(pairs: Tuple[str, ...]) -> dict:
    mapping = {}
    for pair in pairs:
        connection, sep, group = pair.partition("=")
        if not sep or not connection or not group:
            raise click.BadParameter(
                f"expected CONNECTION=GROUP, got {pair!r}", param_hint="--group-name"
            )
        mapping[connection] = group
    return mapping


def _load_event(file: Optional[str], stdin: bool) -> dict:
    if stdin:
        raw = sys.stdin.read()
    else:
        with open(file, "r") as f:
            raw = f.read()
    event = json.loads(raw)
    if not isinstance(event, dict) or "user" not in event or "context" not in event:
        raise ValueError("event must be a JSON object with 'user' and 'context'")
    return event


@click.command()
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False))
@click.option("--stdin", is_flag=True, help="Read the event JSON from stdin")
@click.option("--base-url", help="SCIM endpoint root (default: SCIM_BASE_URL or New Relic)")
@click.option("--token", envvar="SCIM_TOKEN", help="Bearer token; overrides the secret in the event")
@click.option("--group-name", "group_names", multiple=True, metavar="CONNECTION=GROUP",
              help="Map a connection name to a group name (repeatable)")
@click.option("--timeout", type=float, help="Per-request timeout in seconds")
@click.option("--user-collection", type=click.Choice(USER_LOOKUP_COLLECTIONS),
              help="Collection searched for an existing user by externalId")
@click.option("-v", "--verbose", is_flag=True, help="Log every request")
@click.version_option(version=__version__)
def main(
    file: Optional[str],
    stdin: bool,
    base_url: Optional[str],
    token: Optional[str],
    group_names: Tuple[str, ...],
    timeout: Optional[float],
    user_collection: Optional[str],
    verbose: bool,
):
    """Provision one user into the SCIM directory from a hook event.

    The event is a JSON object ``{"user": {...}, "context": {...}}`` in the
    shape the identity platform passes to the post-registration hook.

    Examples:

    \b
      scim-provision event.json
      scim-provision --group-name Username-Password-Authentication="Auth0 User" event.json
      cat event.json | scim-provision --stdin --token "$NR_DOMAIN_TOKEN"
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not file and not stdin:
        click.echo(click.get_current_context().get_help())
        sys.exit(1)

    try:
        event = _load_event(file, stdin)
        config = HookConfig.from_env()
        overrides = {
            "group_names": {**config.group_names, **_parse_group_names(group_names)},
        }
        if base_url:
            overrides["base_url"] = base_url.rstrip("/")
        if timeout is not None:
            overrides["timeout"] = timeout
        if user_collection:
            overrides["user_lookup_collection"] = user_collection
        config = dataclasses.replace(config, **overrides)

        context = HookContext.from_dict(event["context"])
        if token:
            context.secrets = {**context.secrets, config.token_secret: token}
    except json.JSONDecodeError as e:
        _print_error(f"Invalid JSON: {e}")
        sys.exit(1)
    except (ConfigError, ValueError) as e:
        _print_error(f"Error: {e}")
        sys.exit(1)

    result = provision_user(event["user"], context, config=config)
    if result.success:
        _print_success(f"Provisioned user {result.user_id} into group {result.group_id}")
        sys.exit(0)
    _print_error(f"Provisioning failed: {result.error}")
    sys.exit(1)


if __name__ == "__main__":
    main()
