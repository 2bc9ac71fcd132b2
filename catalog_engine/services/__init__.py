"""
Catalog services.

Everything a request handler calls: lifecycle services per entity, the
search facade and authentication. Services receive a Requester and raise
errors from ``catalog_engine.exceptions``.
"""

from .auth import AuthService, TokenIssuer
from .authorization import AuthorizationGate, Decision, check_ownership, check_role
from .categories import CategoryService
from .guards import GuardContext, GuardResult, enforce, run_guards
from .lifecycle import EntityLifecycleRules
from .products import ProductService
from .roles import RoleService
from .saga import AssetLinkSaga, SagaState
from .search import SearchFacade
from .users import UserService, hash_password, verify_password

__all__ = [
    "AuthService",
    "TokenIssuer",
    "AuthorizationGate",
    "Decision",
    "check_ownership",
    "check_role",
    "CategoryService",
    "GuardContext",
    "GuardResult",
    "enforce",
    "run_guards",
    "EntityLifecycleRules",
    "ProductService",
    "RoleService",
    "AssetLinkSaga",
    "SagaState",
    "SearchFacade",
    "UserService",
    "hash_password",
    "verify_password",
]
