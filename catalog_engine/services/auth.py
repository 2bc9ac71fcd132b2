"""
Authentication service.

Token signing and Google id-token verification are done by collaborators:
a TokenIssuer turns a user id into a token, and Google sign-in receives an
IdentityProfile that was already verified by the caller.
"""

import logging
from typing import Protocol

from ..core.types import AuthResult, IdentityProfile, Requester, User
from ..exceptions import AuthenticationError
from .users import UserService, verify_password

logger = logging.getLogger(__name__)


class TokenIssuer(Protocol):
    """Issues an access token for a user id (for example a signed JWT)."""

    def issue(self, user_id: str) -> str: ...


class AuthService:
    """
    Example:
        auth = AuthService(users, issuer)
        result = await auth.login("ana@example.com", "secret")
        requester = await auth.resolve_requester(result.user.id)
    """

    def __init__(self, users: UserService, token_issuer: TokenIssuer):
        self._users = users
        self._token_issuer = token_issuer

    def _result(self, user: User) -> AuthResult:
        return AuthResult(user=user, token=self._token_issuer.issue(user.id))

    async def login(self, email: str, password: str) -> AuthResult:
        """
        Authenticate with email and password.

        Raises:
            AuthenticationError: Unknown email, wrong password or blocked account
        """
        user = await self._users.find_by_email(email, include_inactive=True)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Login rejected: invalid credentials")
            raise AuthenticationError("The email or password is not correct")
        if not user.is_active:
            logger.info(f"Login rejected: user {user.id} is blocked")
            raise AuthenticationError("The user is blocked", context={"user_id": user.id})
        return self._result(user)

    async def google_sign_in(self, profile: IdentityProfile) -> AuthResult:
        """
        Sign in with a verified Google identity, creating the account on first use.

        Raises:
            AuthenticationError: If the account with this email is blocked
        """
        user = await self._users.find_by_email(profile.email, include_inactive=True)
        if user is None:
            user = await self._users.create(
                {"name": profile.name, "email": profile.email, "avatar": profile.picture},
                google=True,
            )
            logger.info(f"Created user {user.id} from Google sign-in")
        if not user.is_active:
            raise AuthenticationError("The user is blocked", context={"user_id": user.id})
        return self._result(user)

    async def resolve_requester(self, user_id: str) -> Requester:
        """
        Build the Requester for an authenticated user id (usually the token subject).

        Raises:
            AuthenticationError: If the user is missing or blocked
        """
        user = None
        if self._users.adapter.is_valid_id(user_id):
            user = await self._users.adapter.find_by_id(user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("The token does not belong to an active user")
        return Requester(id=user.id, role_id=user.role_id)

    async def renew(self, requester: Requester) -> AuthResult:
        """
        Issue a fresh token for the requester.

        Raises:
            AuthenticationError: If the user is no longer active
        """
        await self.resolve_requester(requester.id)
        return self._result(await self._users.get(requester.id))
