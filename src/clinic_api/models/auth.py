"""Auth-related data models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class UserRole(str, Enum):
    DOCTOR = "DOCTOR"
    ML_ENGINEER = "ML_ENGINEER"


def normalize_user_role(role: str) -> UserRole:
    """Map a raw backend role ('ml_engineer', 'ML-ENGINEER', 'dr', ...) to UserRole."""
    normalized = role.upper().replace("-", "_").strip()
    if normalized in ("ML_ENGINEER", "MLENGINEER"):
        return UserRole.ML_ENGINEER
    # Unknown roles fall back to DOCTOR
    return UserRole.DOCTOR


class AccessTokenInfo(BaseModel):
    token: str
    expires_at: datetime
    token_type: str = "bearer"
    created_at: datetime | None = None


class RefreshTokenInfo(BaseModel):
    token: str
    expires_at: datetime | None = None
    token_type: str = "bearer"
    created_at: datetime | None = None


class AuthTokens(BaseModel):
    access_token: AccessTokenInfo
    refresh_token: RefreshTokenInfo


class RefreshTokenResponse(BaseModel):
    """Value of the /auth/refresh envelope."""
    tokens: AuthTokens


class User(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: str = UserRole.DOCTOR.value
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def normalized_role(self) -> UserRole:
        return normalize_user_role(self.role)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AuthResponse(BaseModel):
    """Value of the /auth/login and /auth/register envelopes."""
    user: User
    tokens: AuthTokens


class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    first_name: str
    last_name: str
    role: UserRole | None = None


class CredentialStatus(BaseModel):
    """Current state of the stored credential pair."""
    has_access_token: bool
    has_refresh_token: bool
    is_expired: bool
    expires_at: datetime | None = None
    seconds_remaining: int | None = None
