"""CLI entry points for API Territoires.

Provides command-line tools for:
- Matching a single name against the reference store
- Batch housekeeping
- API key provisioning
- Running the HTTP server
"""

import click

from .. import __version__
from .apikey import cli as apikey_cli
from .batch import cli as batch_cli
from .match import match_command
from .serve import serve_command


@click.group()
@click.version_option(version=__version__, prog_name="territoires")
def main():
    """API Territoires - territorial entity matching.

    Command-line tools for matching names, cleaning up batch
    requests and provisioning API keys.
    """
    pass


main.add_command(match_command, name="match")
main.add_command(batch_cli, name="batch")
main.add_command(apikey_cli, name="apikey")
main.add_command(serve_command, name="serve")


if __name__ == "__main__":
    main()
