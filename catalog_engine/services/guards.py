"""
Guard pipeline.

Write operations run an ordered list of guards before touching storage:
existence, ownership, role, duplicate name. Each guard inspects (and may
enrich) a shared GuardContext and either lets the pipeline proceed or halts
it with the error to raise.

Usage:
    ctx = GuardContext(requester)
    await enforce(ctx, [
        entity_exists(uow.categories, category_id),
        owner_only(),
        role_in(gate, PRIVILEGED_ROLES),
    ])
    category = ctx.entity
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..constants import PRIVILEGED_ROLES
from ..core.types import Entity, Requester, Role
from ..exceptions import (
    CatalogEngineError,
    DuplicateNameError,
    NotFoundError,
    ValidationRejectedError,
)
from ..repositories.base import QueryAdapter
from .authorization import AuthorizationGate, check_ownership, check_role

logger = logging.getLogger(__name__)


@dataclass
class GuardContext:
    """State shared by the guards of one operation."""

    requester: Optional[Requester]
    entity: Optional[Entity] = None
    role: Optional[Role] = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GuardResult:
    proceed: bool
    error: Optional[CatalogEngineError] = None

    @classmethod
    def ok(cls) -> "GuardResult":
        return cls(proceed=True)

    @classmethod
    def halt(cls, error: CatalogEngineError) -> "GuardResult":
        return cls(proceed=False, error=error)


Guard = Callable[[GuardContext], Awaitable[GuardResult]]


async def run_guards(ctx: GuardContext, guards: Iterable[Guard]) -> GuardResult:
    """Run guards in order, stopping at the first one that halts."""
    for guard in guards:
        result = await guard(ctx)
        if not result.proceed:
            logger.debug(f"Guard {getattr(guard, '__name__', guard)} halted: {result.error}")
            return result
    return GuardResult.ok()


async def enforce(ctx: GuardContext, guards: Iterable[Guard]) -> GuardContext:
    """
    Run guards and raise the halting error, if any.

    Returns:
        The context, enriched by the guards
    """
    result = await run_guards(ctx, guards)
    if not result.proceed:
        raise result.error
    return ctx


def entity_exists(adapter: QueryAdapter, entity_id: str) -> Guard:
    """Load the active entity into ``ctx.entity``."""

    async def guard(ctx: GuardContext) -> GuardResult:
        label = adapter.entity_class.ENTITY_LABEL
        if not adapter.is_valid_id(entity_id):
            return GuardResult.halt(
                ValidationRejectedError(f"'{entity_id}' is not a valid {label} id", field="id")
            )
        entity = await adapter.find_by_id(entity_id)
        if entity is None or not entity.is_active:
            return GuardResult.halt(NotFoundError(label, entity_id))
        ctx.entity = entity
        return GuardResult.ok()

    guard.__name__ = "entity_exists"
    return guard


def owner_only(owner_field: str = "owner_id") -> Guard:
    """
    Require the requester to own ``ctx.entity``.

    For users the entity is its own owner: pass ``owner_field="id"``.
    """

    async def guard(ctx: GuardContext) -> GuardResult:
        decision = check_ownership(ctx.requester, getattr(ctx.entity, owner_field, None))
        if not decision.allowed:
            return GuardResult.halt(decision.to_error())
        return GuardResult.ok()

    guard.__name__ = "owner_only"
    return guard


def role_in(gate: AuthorizationGate, allowed: Iterable[str] = PRIVILEGED_ROLES) -> Guard:
    """Require the requester's freshly loaded role to be in ``allowed``."""
    allowed = frozenset(allowed)

    async def guard(ctx: GuardContext) -> GuardResult:
        ctx.role = await gate.load_role(ctx.requester)
        decision = check_role(ctx.role, allowed)
        if not decision.allowed:
            return GuardResult.halt(decision.to_error())
        return GuardResult.ok()

    guard.__name__ = "role_in"
    return guard


def unique_name(
    adapter: QueryAdapter,
    name: str,
    search_key: str,
    exclude_id: str | None = None,
) -> Guard:
    """Reject a name whose search key is already used by another active record."""

    async def guard(ctx: GuardContext) -> GuardResult:
        if await adapter.exists({"lower_name": search_key}, exclude_id=exclude_id):
            return GuardResult.halt(DuplicateNameError(adapter.entity_class.ENTITY_LABEL, name))
        return GuardResult.ok()

    guard.__name__ = "unique_name"
    return guard
