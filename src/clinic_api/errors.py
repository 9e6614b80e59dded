"""Normalized API errors.

Every failed call, whatever its shape on the wire, ends up as one ApiError:
the backend's error envelope, a transport failure with no response, or an
HTTP failure the backend did not format.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Union

import httpx
from pydantic import ValidationError

from clinic_api.models.envelope import ErrorDetail, PaginatedResponse

UNAUTHORIZED = 401

NETWORK_ERROR_DETAIL = "Unable to connect to the server. Please check your internet connection."


class ApiError(Exception):
    """A failed API call. Immutable once constructed."""

    def __init__(
        self,
        title: str,
        status: int,
        code: str | None = None,
        details: list[str] | tuple[str, ...] | None = None,
        field_errors: Mapping[str, list[str]] | None = None,
        backend_message: str | None = None,
    ) -> None:
        super().__init__(title)
        self._title = title
        self._status = status
        self._code = code
        self._details = tuple(details or ())
        self._field_errors = MappingProxyType(
            {field: tuple(errors) for field, errors in (field_errors or {}).items()}
        )
        self._backend_message = backend_message

    @classmethod
    def from_detail(cls, error: ErrorDetail, message: str | None = None) -> ApiError:
        return cls(
            title=error.title,
            status=error.status,
            code=error.code,
            details=error.details,
            field_errors=error.field_errors,
            backend_message=message,
        )

    @property
    def title(self) -> str:
        return self._title

    @property
    def status(self) -> int:
        return self._status

    @property
    def code(self) -> str | None:
        return self._code

    @property
    def details(self) -> tuple[str, ...]:
        return self._details

    @property
    def field_errors(self) -> Mapping[str, tuple[str, ...]]:
        return self._field_errors

    @property
    def backend_message(self) -> str | None:
        return self._backend_message

    @property
    def message(self) -> str:
        """Primary user-facing message: the backend's message, else the title."""
        return self._backend_message or self._title

    @property
    def full_message(self) -> str:
        """Primary message, details and 'field: error' pairs joined with '. '."""
        messages = [self.message, *self._details]
        for field, errors in self._field_errors.items():
            messages.extend(f"{field}: {error}" for error in errors)
        return ". ".join(messages)

    @property
    def has_details(self) -> bool:
        return bool(self._details)

    @property
    def has_field_errors(self) -> bool:
        return bool(self._field_errors)

    @property
    def is_unauthorized(self) -> bool:
        return self._status == UNAUTHORIZED

    def get_field_errors(self, field: str) -> tuple[str, ...]:
        """Errors for a single form field, or an empty tuple."""
        return self._field_errors.get(field, ())

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self._title,
            "code": self._code,
            "status": self._status,
            "message": self.message,
            "details": list(self._details),
            "field_errors": {field: list(errors) for field, errors in self._field_errors.items()},
        }

    def __repr__(self) -> str:
        return f"ApiError(status={self._status}, code={self._code!r}, title={self._title!r})"


# ── Failure variants ────────────────────────────────────────────────

@dataclass(frozen=True)
class EnvelopeFailure:
    """The backend answered with its own error envelope."""
    error: ErrorDetail
    message: str | None = None


@dataclass(frozen=True)
class TransportFailure:
    """No response was received (connection refused, DNS, timeout, unbuildable URL...)."""
    reason: str


@dataclass(frozen=True)
class UnformattedFailure:
    """An HTTP failure without the backend's envelope (proxy error, stray 5xx)."""
    status: int
    reason: str


Failure = Union[EnvelopeFailure, TransportFailure, UnformattedFailure]


def parse_exception(exc: Exception) -> Failure:
    """Classify an exception raised while sending a request."""
    if isinstance(exc, httpx.HTTPStatusError):
        return UnformattedFailure(
            status=exc.response.status_code,
            reason=f"Request failed with status code {exc.response.status_code}",
        )
    return TransportFailure(reason=str(exc) or type(exc).__name__)


def parse_response(response: httpx.Response) -> PaginatedResponse | Failure:
    """Split a received response into a success envelope or a failure variant."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict) and data.get("success") is False and isinstance(data.get("error"), dict):
        message = data.get("message")
        try:
            return EnvelopeFailure(
                error=ErrorDetail.model_validate(data["error"]),
                message=message if isinstance(message, str) else None,
            )
        except ValidationError:
            pass

    if response.is_error:
        return UnformattedFailure(
            status=response.status_code,
            reason=f"Request failed with status code {response.status_code}",
        )

    if isinstance(data, dict):
        try:
            return PaginatedResponse.model_validate(data)
        except ValidationError as e:
            return UnformattedFailure(
                status=response.status_code,
                reason=f"Malformed response envelope: {e.error_count()} validation error(s)",
            )

    # Empty (204) or non-envelope bodies carry no value
    return PaginatedResponse(success=True, value=data)


def normalize(failure: Failure) -> ApiError:
    """Convert any failure variant into an ApiError. Never raises."""
    if isinstance(failure, EnvelopeFailure):
        return ApiError.from_detail(failure.error, failure.message)

    if isinstance(failure, TransportFailure):
        return ApiError(
            title="Network Error",
            status=0,
            code="NETWORK_ERROR",
            details=[NETWORK_ERROR_DETAIL],
            backend_message="Network error occurred",
        )

    return ApiError(
        title="Request Failed",
        status=failure.status,
        code="REQUEST_FAILED",
        details=[failure.reason],
        backend_message=f"Request failed with status {failure.status}",
    )
