"""
Init command for CLI.

Prepares a backend: opens it, creates indexes or tables and seeds the
fixed role set.
"""

from typing import Any, Optional

import click

from ...constants import SUPPORTED_BACKENDS
from ...core.engine import CatalogEngine
from ..utils import build_config, format_output, run_with_engine


async def _initialize(engine: CatalogEngine) -> dict[str, Any]:
    indexes = await engine.ensure_indexes()
    roles = await engine.seed_roles()
    return {"backend": engine.config.backend, "indexes": indexes, "seeded_roles": roles}


@click.command()
@click.option(
    "--backend",
    "-b",
    type=click.Choice(SUPPORTED_BACKENDS, case_sensitive=False),
    default=None,
    help="Storage backend (defaults to CATALOG_BACKEND)",
)
def init(backend: Optional[str]) -> None:
    """
    Create indexes and seed the default roles.

    Examples:
        catalog-engine init
        catalog-engine init --backend sql
    """
    summary = run_with_engine(build_config(backend), _initialize)

    click.echo(click.style(f"Backend '{summary['backend']}' initialized", fg="green"))
    if summary["seeded_roles"]:
        click.echo(f"Seeded roles: {', '.join(summary['seeded_roles'])}")
    else:
        click.echo("All roles already exist")
    if summary["indexes"]:
        click.echo(format_output(summary["indexes"]))
