"""Authentication service: login, registration, logout and session info."""

from __future__ import annotations

import logging

from clinic_api.client import ApiClient
from clinic_api.errors import ApiError
from clinic_api.models.auth import (
    AuthResponse,
    AuthTokens,
    CredentialStatus,
    LoginRequest,
    RegisterRequest,
    User,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
REGISTER_PATH = "/auth/register"
LOGOUT_PATH = "/auth/logout"
ME_PATH = "/auth/me"


class AuthService:
    """Service for the /auth endpoints. Keeps the client's credential store in sync."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def login(self, email: str, password: str) -> AuthResponse:
        """Log in and store the returned credential pair.

        A 401 here means wrong credentials, so it is never refreshed.
        """
        value = await self._client.post(
            LOGIN_PATH,
            LoginRequest(email=email, password=password),
            skip_auth_retry=True,
        )
        return self._store_session(value)

    async def register(self, data: RegisterRequest) -> AuthResponse:
        """Register a new user and store the returned credential pair."""
        value = await self._client.post(REGISTER_PATH, data, skip_auth_retry=True)
        return self._store_session(value)

    async def logout(self) -> None:
        """Log out on the backend. Local credentials are cleared either way."""
        try:
            await self._client.post(LOGOUT_PATH)
        except ApiError as e:
            logger.warning(f"Logout request failed: {e.message}")
            raise
        finally:
            self._client.store.clear()

    async def me(self) -> User:
        """Get the currently authenticated user."""
        return User.model_validate(await self._client.get(ME_PATH))

    async def refresh(self) -> AuthTokens:
        """Force a credential refresh."""
        return await self._client.refresh()

    def status(self) -> CredentialStatus:
        return self._client.store.status()

    def _store_session(self, value: object) -> AuthResponse:
        auth = AuthResponse.model_validate(value)
        self._client.store.set(
            auth.tokens.access_token.token,
            auth.tokens.refresh_token.token,
            auth.tokens.access_token.expires_at,
        )
        logger.info(f"Logged in as {auth.user.email}")
        return auth
