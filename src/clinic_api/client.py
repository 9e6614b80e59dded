"""Base API client for the clinic backend.

Handles bearer header injection, envelope unwrapping, error normalization,
and transparent credential refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel

from clinic_api.auth import REFRESH_PATH, RefreshCoordinator, SessionEndHandler
from clinic_api.config import Config
from clinic_api.credentials import CredentialStore, store_from_config
from clinic_api.errors import ApiError, normalize, parse_exception, parse_response
from clinic_api.models.auth import AuthTokens
from clinic_api.models.envelope import ApiResponse, PaginatedResponse, PaginatedResult, Pagination

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """One logical call, kept across its first attempt and its retry."""
    method: str
    path: str
    body: Any = None
    params: dict[str, Any] | None = None
    skip_auth_retry: bool = False
    retried: bool = False
    sent_token: str | None = None


class ApiClient:
    """Async HTTP client for the clinic API with transparent credential refresh."""

    def __init__(
        self,
        config: Config,
        store: CredentialStore | None = None,
        *,
        on_session_end: SessionEndHandler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        verbose: bool = False,
    ) -> None:
        self._config = config
        self._store = store if store is not None else store_from_config(config)
        self._verbose = verbose
        self._default_page_size = config.settings.default_page_size
        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.settings.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._auth = RefreshCoordinator(
            self._http,
            self._store,
            refresh_path=REFRESH_PATH,
            on_session_end=on_session_end,
        )

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def auth(self) -> RefreshCoordinator:
        return self._auth

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: dict[str, Any] | None = None,
        skip_auth_retry: bool = False,
    ) -> PaginatedResponse:
        """Make an authenticated API request and return the success envelope.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: API path (e.g. "/patients"). Appended to the base URL.
            body: JSON request body; pydantic models are dumped first.
            params: Query parameters.
            skip_auth_retry: Never treat a 401 on this call as an expired
                credential (login and register, where 401 means wrong password).

        Returns:
            The parsed response envelope.

        Raises:
            ApiError: For every failure, including network errors.
        """
        if isinstance(body, BaseModel):
            body = body.model_dump(mode="json", exclude_none=True)

        ctx = RequestContext(
            method=method.upper(),
            path=path,
            body=body,
            params=params,
            skip_auth_retry=skip_auth_retry,
        )

        try:
            return await self._send(ctx)
        except ApiError as error:
            failure = error

        await self._auth.recover(ctx, failure)
        return await self._send(ctx)

    async def get(self, path: str, **kwargs: Any) -> Any:
        """GET and return the envelope's value."""
        return (await self.request("GET", path, **kwargs)).value

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """POST and return the envelope's value."""
        return (await self.request("POST", path, body=body, **kwargs)).value

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """PUT and return the envelope's value."""
        return (await self.request("PUT", path, body=body, **kwargs)).value

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        """PATCH and return the envelope's value."""
        return (await self.request("PATCH", path, body=body, **kwargs)).value

    async def delete(self, path: str, **kwargs: Any) -> Any:
        """DELETE and return the envelope's value."""
        return (await self.request("DELETE", path, **kwargs)).value

    async def get_paginated(self, path: str, **kwargs: Any) -> PaginatedResult:
        """GET a paginated list.

        A missing item list reads as empty, and missing pagination metadata
        as page 1 with zero totals.
        """
        envelope = await self.request("GET", path, **kwargs)
        items = envelope.value if isinstance(envelope.value, list) else []
        pagination = envelope.pagination or Pagination(page_size=self._default_page_size)
        return PaginatedResult(items=items, pagination=pagination)

    async def get_full_response(self, path: str, **kwargs: Any) -> ApiResponse:
        """GET and return the whole envelope (value and backend message)."""
        return await self.request("GET", path, **kwargs)

    async def post_full_response(self, path: str, body: Any = None, **kwargs: Any) -> ApiResponse:
        """POST and return the whole envelope (value and backend message)."""
        return await self.request("POST", path, body=body, **kwargs)

    async def refresh(self) -> AuthTokens:
        """Force a credential refresh."""
        return await self._auth.force_refresh()

    async def _send(self, ctx: RequestContext) -> PaginatedResponse:
        """Send one attempt of a call with the current access token."""
        ctx.sent_token = self._store.get_access()
        headers = self._build_headers(ctx.sent_token)

        if self._verbose:
            attempt = "retry" if ctx.retried else "first attempt"
            logger.info(f"[{attempt}] {ctx.method} {ctx.path}")
            if ctx.body:
                logger.info(f"Body: {ctx.body}")
        else:
            logger.debug(f"{ctx.method} {ctx.path}")

        try:
            response = await self._http.request(
                ctx.method,
                ctx.path,
                json=ctx.body,
                params=ctx.params,
                headers=headers,
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            logger.warning(f"No response for {ctx.method} {ctx.path}: {e!r}")
            raise normalize(parse_exception(e)) from e

        if self._verbose:
            logger.info(f"Response: {response.status_code}")

        outcome = parse_response(response)
        if isinstance(outcome, PaginatedResponse):
            return outcome
        raise normalize(outcome)

    def _build_headers(self, token: str | None) -> dict[str, str]:
        """Bearer header when a token is stored; no header otherwise."""
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
