"""Transparent credential refresh for the API client.

Handles expired-credential detection, the refresh call, and queueing of
concurrent requests so that one expired-credential window triggers exactly
one refresh.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Callable

import httpx
from pydantic import ValidationError

from clinic_api.credentials import CredentialStore
from clinic_api.errors import ApiError, normalize, parse_exception, parse_response
from clinic_api.models.auth import AuthTokens, RefreshTokenResponse
from clinic_api.models.envelope import PaginatedResponse

if TYPE_CHECKING:
    from clinic_api.client import RequestContext

logger = logging.getLogger(__name__)

REFRESH_PATH = "/auth/refresh"

SessionEndHandler = Callable[[Exception], None]


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class RefreshCoordinator:
    """Single-flight token refresh shared by every request of one client.

    The state and the waiter list are only touched between awaits, which is
    enough on a single event loop. Do not share an instance across threads.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: CredentialStore,
        refresh_path: str = REFRESH_PATH,
        on_session_end: SessionEndHandler | None = None,
    ) -> None:
        self._http = http
        self._store = store
        self._refresh_path = refresh_path
        self._on_session_end = on_session_end
        self._state = RefreshState.IDLE
        self._waiters: list[asyncio.Future[AuthTokens]] = []
        self._task: asyncio.Future[AuthTokens] | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def pending(self) -> int:
        """Number of requests waiting on the in-flight refresh."""
        return len(self._waiters)

    def is_refresh_call(self, ctx: RequestContext) -> bool:
        """Whether the call targets the refresh endpoint itself, ignoring the query string."""
        path = ctx.path.split("?", 1)[0].rstrip("/")
        return path.endswith(self._refresh_path)

    def should_refresh(self, ctx: RequestContext, error: ApiError) -> bool:
        """Whether a failed call counts as an expired credential.

        Any 401 counts unless the call opted out (login, register), already
        went through a refresh once, or is the refresh call itself.
        """
        return (
            error.is_unauthorized
            and not ctx.skip_auth_retry
            and not ctx.retried
            and not self.is_refresh_call(ctx)
        )

    async def recover(self, ctx: RequestContext, error: ApiError) -> None:
        """Make a failed call ready for its single retry, or raise.

        Returns once fresh credentials are stored. Raises ``error`` when the
        failure is not an expired credential, and the refresh failure when
        the refresh does not succeed.
        """
        if self.is_refresh_call(ctx) and error.status != 0:
            logger.warning(f"Refresh endpoint failed ({error.status}), ending session")
            self._store.clear()
            self._end_session(error)
            raise error

        if not self.should_refresh(ctx, error):
            raise error

        ctx.retried = True
        current = self._store.get_access()
        if self._state is RefreshState.IDLE and current and current != ctx.sent_token:
            # Sent with a token that has since been rotated; retry with the new one
            logger.debug(f"Credentials rotated since {ctx.method} {ctx.path} was sent, retrying")
            return

        logger.warning(f"Got 401 on {ctx.method} {ctx.path}, refreshing credentials")
        await self._refresh(error)

    async def force_refresh(self) -> AuthTokens:
        """Refresh now, joining the in-flight refresh if there is one."""
        return await self._refresh(None)

    async def _refresh(self, trigger_error: ApiError | None) -> AuthTokens:
        if self._state is RefreshState.REFRESHING:
            waiter: asyncio.Future[AuthTokens] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            logger.debug(f"Refresh in flight, {len(self._waiters)} request(s) queued")
            return await waiter

        refresh_token = self._store.get_refresh()
        if not refresh_token:
            error = trigger_error or ApiError(
                title="Session Expired",
                status=401,
                code="NO_REFRESH_TOKEN",
                details=["No refresh token is stored. Please log in again."],
            )
            logger.warning("No refresh token available, ending session")
            self._store.clear()
            self._end_session(error)
            raise error

        self._state = RefreshState.REFRESHING
        task = asyncio.ensure_future(self._run_refresh(refresh_token))
        task.add_done_callback(self._forget)
        self._task = task
        # The refresh outlives a cancelled trigger so queued callers still settle
        return await asyncio.shield(task)

    async def _run_refresh(self, refresh_token: str) -> AuthTokens:
        try:
            tokens = await self._request_tokens(refresh_token)
            self._store.set(
                tokens.access_token.token,
                tokens.refresh_token.token,
                tokens.access_token.expires_at,
            )
        except asyncio.CancelledError:
            logger.warning("Token refresh cancelled")
            self._release(cancel=True)
            raise
        except Exception as exc:
            self._release(error=exc)
            logger.warning(f"Token refresh failed: {exc}")
            self._store.clear()
            self._end_session(exc)
            raise

        self._release(tokens=tokens)
        logger.info(f"Credentials refreshed, access token valid until {tokens.access_token.expires_at}")
        return tokens

    def _forget(self, task: asyncio.Future[AuthTokens]) -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled():
            # Already delivered to the trigger and the waiters
            task.exception()

    async def _request_tokens(self, refresh_token: str) -> AuthTokens:
        """POST the refresh token straight to the transport, without the bearer header."""
        try:
            response = await self._http.post(self._refresh_path, json={"refresh_token": refresh_token})
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise normalize(parse_exception(e)) from e

        outcome = parse_response(response)
        if not isinstance(outcome, PaginatedResponse):
            raise normalize(outcome)

        try:
            if not outcome.success or outcome.value is None:
                raise ValueError("empty refresh envelope")
            return RefreshTokenResponse.model_validate(outcome.value).tokens
        except (ValueError, ValidationError) as e:
            raise ApiError(
                title="Token Refresh Failed",
                status=401,
                code="REFRESH_FAILED",
                details=["The refresh endpoint did not return new tokens."],
                backend_message=outcome.message,
            ) from e

    def _release(
        self,
        tokens: AuthTokens | None = None,
        error: Exception | None = None,
        cancel: bool = False,
    ) -> None:
        """Return to IDLE and settle every queued waiter in the same step."""
        self._state = RefreshState.IDLE
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if cancel:
                waiter.cancel()
            elif error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(tokens)

    def _end_session(self, error: Exception) -> None:
        logger.warning(f"Session ended: {error}")
        if self._on_session_end is not None:
            self._on_session_end(error)
