"""Credential storage for the access/refresh token pair.

The rest of the client only talks to the CredentialStore interface, so the
storage medium (memory, cookie file, keychain...) can be swapped freely.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from http.cookiejar import Cookie, LWPCookieJar
from pathlib import Path
from typing import TYPE_CHECKING

from clinic_api.models.auth import CredentialStatus

if TYPE_CHECKING:
    from clinic_api.config import Config

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
REFRESH_LIFETIME = timedelta(days=30)


def _aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class CredentialStore(ABC):
    """Key/value access to the single active credential pair."""

    @abstractmethod
    def get_access(self) -> str | None: ...

    @abstractmethod
    def get_refresh(self) -> str | None: ...

    @abstractmethod
    def get_expiry(self) -> datetime | None: ...

    @abstractmethod
    def set(self, access: str, refresh: str, access_expiry: datetime) -> None:
        """Replace both tokens together."""

    @abstractmethod
    def clear(self) -> None:
        """Remove both tokens. Safe to call when already empty."""

    def status(self) -> CredentialStatus:
        """Get the current credential status."""
        access = self.get_access()
        refresh = self.get_refresh()
        expiry = self.get_expiry()

        now = datetime.now(timezone.utc)
        is_expired = not access or expiry is None or now > _aware(expiry)
        seconds_remaining = None
        if expiry and not is_expired:
            seconds_remaining = int((_aware(expiry) - now).total_seconds())

        return CredentialStatus(
            has_access_token=bool(access),
            has_refresh_token=bool(refresh),
            is_expired=is_expired,
            expires_at=expiry if access else None,
            seconds_remaining=seconds_remaining,
        )


class MemoryCredentialStore(CredentialStore):
    """In-process store; the pair lives as long as the object."""

    def __init__(self) -> None:
        self._pair: tuple[str, str, datetime] | None = None

    def get_access(self) -> str | None:
        return self._pair[0] if self._pair else None

    def get_refresh(self) -> str | None:
        return self._pair[1] if self._pair else None

    def get_expiry(self) -> datetime | None:
        return self._pair[2] if self._pair else None

    def set(self, access: str, refresh: str, access_expiry: datetime) -> None:
        # Single assignment keeps the pair consistent for readers
        self._pair = (access, refresh, access_expiry)

    def clear(self) -> None:
        self._pair = None


class CookieCredentialStore(CredentialStore):
    """Persists the pair as cookies in an LWP cookie file.

    Cookies are scoped to path "/" with SameSite=Lax, and marked secure when
    ``secure`` is set. The access cookie expires at the backend-supplied
    expiry; the refresh cookie gets a fixed local lifetime.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        domain: str = "clinic-api.local",
        secure: bool = False,
        refresh_lifetime: timedelta = REFRESH_LIFETIME,
    ) -> None:
        self._path = Path(path).expanduser()
        self._domain = domain
        self._secure = secure
        self._refresh_lifetime = refresh_lifetime
        self._jar = LWPCookieJar(str(self._path))
        if self._path.exists():
            self._jar.load(ignore_discard=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_access(self) -> str | None:
        cookie = self._find(ACCESS_COOKIE)
        return cookie.value if cookie else None

    def get_refresh(self) -> str | None:
        cookie = self._find(REFRESH_COOKIE)
        return cookie.value if cookie else None

    def get_expiry(self) -> datetime | None:
        cookie = self._find(ACCESS_COOKIE)
        if cookie is None or cookie.expires is None:
            return None
        return datetime.fromtimestamp(cookie.expires, tz=timezone.utc)

    def set(self, access: str, refresh: str, access_expiry: datetime) -> None:
        refresh_expiry = datetime.now(timezone.utc) + self._refresh_lifetime
        self._jar.set_cookie(self._make_cookie(ACCESS_COOKIE, access, _aware(access_expiry)))
        self._jar.set_cookie(self._make_cookie(REFRESH_COOKIE, refresh, refresh_expiry))
        self._save()

    def clear(self) -> None:
        for name in (ACCESS_COOKIE, REFRESH_COOKIE):
            try:
                self._jar.clear(self._domain, "/", name)
            except KeyError:
                pass
        self._save()

    def _find(self, name: str) -> Cookie | None:
        for cookie in self._jar:
            if cookie.name == name and cookie.domain == self._domain and not cookie.is_expired():
                return cookie
        return None

    def _make_cookie(self, name: str, value: str, expires: datetime) -> Cookie:
        return Cookie(
            version=0,
            name=name,
            value=value,
            port=None,
            port_specified=False,
            domain=self._domain,
            domain_specified=True,
            domain_initial_dot=False,
            path="/",
            path_specified=True,
            secure=self._secure,
            expires=int(expires.timestamp()),
            discard=False,
            comment=None,
            comment_url=None,
            rest={"SameSite": "Lax"},
        )

    def _save(self) -> None:
        """Write the jar to a temp file, then move it over the cookie file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        self._jar.save(str(tmp_path), ignore_discard=True, ignore_expires=False)
        os.replace(tmp_path, self._path)
        logger.debug(f"Saved credentials to {self._path}")


def store_from_config(config: Config) -> CookieCredentialStore:
    """Build the cookie-file store described by the configuration."""
    return CookieCredentialStore(
        config.credentials_file,
        secure=config.secure_cookies,
        refresh_lifetime=timedelta(days=config.settings.refresh_lifetime_days),
    )
