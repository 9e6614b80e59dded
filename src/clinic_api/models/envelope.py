"""Backend response envelope models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Error block of a failed envelope."""
    title: str
    code: str | None = None
    status: int
    details: list[str] | None = None
    field_errors: dict[str, list[str]] | None = None


class Pagination(BaseModel):
    page: int = 1
    page_size: int = 20
    total: int = 0
    total_pages: int = 0


class ApiResponse(BaseModel):
    """Uniform success/error wrapper around every response body."""
    success: bool = True
    message: str | None = None
    value: Any = None
    error: ErrorDetail | None = None

    model_config = {"extra": "allow"}


class PaginatedResponse(ApiResponse):
    pagination: Pagination | None = None


class PaginatedResult(BaseModel):
    """Items of one page plus its pagination metadata."""
    items: list[Any] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)
