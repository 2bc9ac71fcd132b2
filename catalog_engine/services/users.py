"""
User service.

Users are identified by their email, which is stored lower-cased and must
be unique among active users. Passwords are hashed with bcrypt and never
leave this module in clear.
"""

import logging
from typing import Any, Optional

import bcrypt

from ..assets.base import AssetStore, AssetUpload
from ..constants import (
    DEFAULT_BCRYPT_ROUNDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_USER_ROLE,
    USER_AVATAR_FIELD,
    USERS_ASSET_FOLDER,
)
from ..core.normalization import apply_name, normalize_email
from ..core.types import Category, Requester, User
from ..exceptions import DuplicateEmailError, ValidationRejectedError
from ..repositories.base import QueryAdapter
from ..repositories.unit_of_work import UnitOfWork
from .authorization import AuthorizationGate
from .guards import GuardContext, enforce, entity_exists, owner_only, role_in
from .lifecycle import EntityLifecycleRules, clamp_page_size, writable_payload
from .roles import RoleService
from .saga import AssetLinkSaga

logger = logging.getLogger(__name__)

USER_WRITABLE_FIELDS = ("name", "email", "password", "role")
USER_UPDATABLE_FIELDS = ("name", "email", "password")


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """
    Raises:
        ValidationRejectedError: If the password is empty
    """
    if not isinstance(password, str) or not password:
        raise ValidationRejectedError("The password is required", field="password")
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a bcrypt hash. Non-bcrypt hashes never match."""
    if not password or not password_hash or not password_hash.startswith("$2"):
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class UserService(EntityLifecycleRules[User]):
    """
    Users are their own owners: only the user can update their record.
    Deleting a user requires a privileged role.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        gate: AuthorizationGate,
        asset_store: Optional[AssetStore],
        password_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ):
        super().__init__(uow.users, gate)
        self._categories: QueryAdapter[Category] = uow.categories
        self._roles = RoleService(uow.roles)
        self._password_rounds = password_rounds
        self._saga = (
            AssetLinkSaga(uow.users, asset_store, USERS_ASSET_FOLDER, USER_AVATAR_FIELD)
            if asset_store is not None
            else None
        )

    def _require_saga(self, avatar: Optional[AssetUpload]) -> Optional[AssetLinkSaga]:
        if avatar is None:
            return None
        if self._saga is None:
            raise ValidationRejectedError(
                "Avatars cannot be stored: no asset store is configured", field=USER_AVATAR_FIELD
            )
        avatar.ensure_allowed_extension()
        return self._saga

    async def ensure_unique_email(self, email: str, exclude_id: str | None = None) -> None:
        """
        Raises:
            DuplicateEmailError: If an active user already uses the email
        """
        if await self._adapter.exists({"email": email}, exclude_id=exclude_id):
            raise DuplicateEmailError(email)

    async def find_by_email(self, email: str, include_inactive: bool = False) -> Optional[User]:
        matches = await self._adapter.find_exact(
            {"email": normalize_email(email)}, include_inactive=include_inactive
        )
        if not matches:
            return None
        # An active account wins over blocked ones sharing the address
        return next((user for user in matches if user.is_active), matches[0])

    async def create(
        self,
        data: dict[str, Any],
        avatar: Optional[AssetUpload] = None,
        google: bool = False,
    ) -> User:
        """
        Create a user.

        Args:
            data: name, email, password and optionally role (by name,
                defaults to USER_ROLE)
            avatar: Optional avatar image
            google: Account created through Google sign-in (no password)

        Raises:
            ValidationRejectedError: Empty name, email or password, or unknown role
            DuplicateEmailError: If an active user already uses the email
            PersistenceFailedError: If the storage write failed
            SagaError: If storing the user with the avatar failed
        """
        payload = writable_payload(data, USER_WRITABLE_FIELDS)
        if not payload.get("name"):
            raise ValidationRejectedError("The name is required", field="name")
        payload = apply_name(payload, User.NAME_STYLE)
        email = normalize_email(payload.get("email", ""))
        password_hash = (
            "" if google else hash_password(payload.get("password"), self._password_rounds)
        )

        saga = self._require_saga(avatar)
        await self.ensure_unique_email(email)
        role = await self._roles.require(payload.get("role") or DEFAULT_USER_ROLE)

        user = User(
            name=payload["name"],
            lower_name=payload["lower_name"],
            email=email,
            password_hash=password_hash,
            avatar=data.get("avatar") if google else None,
            role_id=role.id,
            google=google,
        )
        with self.writing("create", duplicate=DuplicateEmailError(email)):
            if saga is None:
                user = await self._adapter.create(user)
            else:
                user = await saga.create(user, avatar)

        logger.info(f"Created user {user.id} with role {role.name}")
        return user

    async def update(
        self,
        requester: Requester,
        user_id: str,
        changes: dict[str, Any],
        avatar: Optional[AssetUpload] = None,
    ) -> User:
        """
        Update the requester's own record, optionally replacing the avatar.

        Raises:
            NotFoundError: If the user is missing or inactive
            OwnershipError: If the requester is not that user
            DuplicateEmailError: If another active user already uses the new email
            PersistenceFailedError: If the storage write failed
            SagaError: If replacing the avatar failed
        """
        saga = self._require_saga(avatar)
        ctx = await enforce(
            GuardContext(requester),
            [entity_exists(self._adapter, user_id), owner_only(owner_field="id")],
        )

        payload = apply_name(writable_payload(changes, USER_UPDATABLE_FIELDS), User.NAME_STYLE)
        if "email" in payload:
            payload["email"] = normalize_email(payload["email"])
            await self.ensure_unique_email(payload["email"], exclude_id=user_id)
        if "password" in payload:
            payload["password_hash"] = hash_password(payload.pop("password"), self._password_rounds)

        duplicate = DuplicateEmailError(payload["email"]) if "email" in payload else None
        if saga is not None:
            with self.writing("update", requester, user_id, duplicate):
                return await saga.update(user_id, payload, avatar)
        if not payload:
            return ctx.entity
        return await self.update_stored(requester, user_id, payload, duplicate)

    async def delete(self, requester: Requester, user_id: str) -> User:
        """
        Block a user. Requires a privileged role; ownership does not apply.

        Raises:
            NotFoundError: If the user is missing or already inactive
            RolePermissionError: If the requester's role is not privileged
            PersistenceFailedError: If the storage write failed
        """
        await enforce(
            GuardContext(requester),
            [entity_exists(self._adapter, user_id), role_in(self._gate)],
        )
        return await self.soft_delete_stored(requester, user_id)

    async def list_categories(
        self, user_id: str, skip: int = 0, limit: int = DEFAULT_PAGE_SIZE
    ) -> list[Category]:
        """
        Active categories owned by an active user.

        Raises:
            NotFoundError: If the user is missing or inactive
        """
        user = await self.get(user_id)
        return await self._categories.list_active(
            {"owner_id": user.id}, skip=max(skip, 0), limit=clamp_page_size(limit)
        )
