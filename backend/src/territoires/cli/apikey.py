"""CLI commands for API key provisioning.

Usage:
    territoires apikey generate
    territoires apikey hash KEY
"""

import json

import click

from ..admission.api_keys import generate_api_key, hash_api_key, lookup_prefix
from ..config import get_settings


@click.group(name="apikey")
def cli():
    """API key commands."""
    pass


def _describe(api_key: str) -> dict[str, str]:
    settings = get_settings()
    if not api_key.startswith(settings.api_key_prefix) or len(api_key) < settings.api_key_min_length:
        raise click.BadParameter(
            f"API keys must start with {settings.api_key_prefix!r} "
            f"and be at least {settings.api_key_min_length} characters"
        )
    return {
        "key_prefix": lookup_prefix(api_key, settings.api_key_lookup_length),
        "key_hash": hash_api_key(api_key),
    }


@cli.command(name="hash")
@click.argument("key")
def hash_key(key: str):
    """Print the stored hash and lookup prefix for KEY.

    Insert both into the api_keys table to provision the key.
    """
    click.echo(json.dumps(_describe(key), indent=2))


@cli.command(name="generate")
def generate():
    """Generate a new key and print it with its hash and lookup prefix.

    The key itself is only shown once.
    """
    api_key = generate_api_key()
    click.echo(json.dumps({"api_key": api_key, **_describe(api_key)}, indent=2))
