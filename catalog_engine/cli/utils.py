"""
Utility functions for CLI commands.

This module provides shared utilities for CLI operations.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import click

from ..config import EngineConfig
from ..core.engine import CatalogEngine
from ..core.types import Entity, User
from ..exceptions import CatalogEngineError


def build_config(backend: Optional[str]) -> EngineConfig:
    """EngineConfig from the environment, with an optional backend override."""
    return EngineConfig(backend=backend)


def run_with_engine(
    config: EngineConfig, action: Callable[[CatalogEngine], Awaitable[Any]]
) -> Any:
    """
    Open an engine, run ``action`` with it and close it.

    Raises:
        click.ClickException: If the engine reports an error
    """

    async def runner() -> Any:
        async with CatalogEngine(config) as engine:
            return await action(engine)

    try:
        return asyncio.run(runner())
    except CatalogEngineError as e:
        raise click.ClickException(str(e)) from e


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    """Outward representation of an entity (never includes password hashes)."""
    if isinstance(entity, User):
        return entity.public_dict()
    return entity.to_dict(include_id=True)


def format_output(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)
