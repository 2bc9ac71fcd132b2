"""
Main CLI entry point.

Defines the ``catalog-engine`` command group.
"""

import logging

import click

from .. import __version__
from .commands.init import init
from .commands.search import search


@click.group()
@click.version_option(__version__, prog_name="catalog-engine")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Catalog Engine command line tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(init)
cli.add_command(search)


if __name__ == "__main__":
    cli()
