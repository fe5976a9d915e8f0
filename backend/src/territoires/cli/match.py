"""CLI command for matching a single territoire name.

Usage:
    territoires match "Lyon" --departement 69
    territoires match "CC du Pays de Gex" --type epci_cc
"""

import asyncio
import sys

import click

from ..config import get_settings
from ..db import close_all_connections
from ..logging import setup_logging


@click.command(name="match")
@click.argument("query")
@click.option("--departement", default=None, help="Departement code hint")
@click.option("--region", default=None, help="Region code hint")
@click.option(
    "--type",
    "type_",
    default=None,
    help="Territoire type hint (region, departement, commune, epci_cc, syndicat...)",
)
def match_command(
    query: str,
    departement: str | None,
    region: str | None,
    type_: str | None,
):
    """Resolve QUERY to an official code and print the result as JSON.

    Exits with status 1 when nothing matched.

    Examples:

        territoires match 84

        territoires match "Cotes d'Armor"
    """
    from ..matching import (
        MatchHints,
        MatchSuccess,
        MatchSuggestions,
        SqlReferenceStore,
        TerritoireMatcher,
    )

    setup_logging()
    settings = get_settings()

    async def _match():
        matcher = TerritoireMatcher(
            SqlReferenceStore(),
            search_limit=settings.match_search_limit,
            high_confidence=settings.match_high_confidence,
        )
        hints = MatchHints(departement=departement, region=region, type=type_).cleaned()
        try:
            return await matcher.match_query(query.strip(), hints)
        finally:
            await close_all_connections()

    result = asyncio.run(_match())
    click.echo(result.model_dump_json(by_alias=True, exclude_none=True, indent=2))

    if not isinstance(result, (MatchSuccess, MatchSuggestions)):
        sys.exit(1)
