"""
Search command for CLI.

Runs the search facade against the configured backend and prints the
results as JSON.
"""

from typing import Optional

import click

from ...constants import SUPPORTED_BACKENDS
from ...core.engine import CatalogEngine
from ...services.search import SEARCH_FIELDS
from ..utils import build_config, entity_to_dict, format_output, run_with_engine


@click.command()
@click.argument("collection", type=click.Choice(list(SEARCH_FIELDS), case_sensitive=False))
@click.argument("query")
@click.option(
    "--backend",
    "-b",
    type=click.Choice(SUPPORTED_BACKENDS, case_sensitive=False),
    default=None,
    help="Storage backend (defaults to CATALOG_BACKEND)",
)
def search(collection: str, query: str, backend: Optional[str]) -> None:
    """
    Search a collection by id or by text.

    COLLECTION: users, categories or products

    QUERY: Id or text contained in the searched fields

    Examples:
        catalog-engine search products lap
        catalog-engine search categories "home appliances"
    """

    async def _search(engine: CatalogEngine) -> list:
        return await engine.search.search(collection, query)

    results = run_with_engine(build_config(backend), _search)
    click.echo(format_output([entity_to_dict(entity) for entity in results]))
