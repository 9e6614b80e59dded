"""Configuration management for the clinic API client.

Loads settings from .env and environment profiles from environments.yaml.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from dotenv import load_dotenv


DEFAULT_PROFILES = {
    "DEVELOPMENT": {"api_base_url": "http://127.0.0.1:1234/api/v1", "secure_cookies": False},
    "PRODUCTION": {"api_base_url": "https://api.clinic.example/api/v1", "secure_cookies": True},
}


class EnvironmentProfile(BaseModel):
    """A single deployment environment's API configuration."""
    api_base_url: str
    secure_cookies: bool = False


class Settings(BaseModel):
    """Application settings loaded from environment variables."""
    environment: str = Field(default="development", description="Active environment profile")
    base_url: str = Field(default="", description="Overrides the profile's API base URL")
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    credentials_path: str = Field(
        default="~/.clinic-api/cookies.txt", description="Cookie file holding the credential pair"
    )
    refresh_lifetime_days: int = Field(default=30, description="Local lifetime of the refresh cookie")
    default_page_size: int = Field(default=20, description="Page size assumed when pagination is omitted")


class Config(BaseModel):
    """Full application configuration."""
    settings: Settings
    environments: dict[str, EnvironmentProfile]

    def get_environment(self, name: str | None = None) -> EnvironmentProfile:
        """Get an environment profile by name (defaults to the active one)."""
        name = (name or self.settings.environment).upper()
        if name not in self.environments:
            available = ", ".join(sorted(self.environments.keys()))
            raise ValueError(f"Unknown environment '{name}'. Available: {available}")
        return self.environments[name]

    @property
    def base_url(self) -> str:
        """API base URL for the active environment."""
        if self.settings.base_url:
            return self.settings.base_url.rstrip("/")
        return self.get_environment().api_base_url.rstrip("/")

    @property
    def secure_cookies(self) -> bool:
        return self.get_environment().secure_cookies

    @property
    def credentials_file(self) -> Path:
        return Path(self.settings.credentials_path).expanduser()

    @property
    def all_environments(self) -> list[str]:
        """List all configured environment names."""
        return sorted(self.environments.keys())


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (where config/ lives)."""
    current = Path(__file__).resolve().parent
    for parent in [current, *current.parents]:
        if (parent / "config" / "environments.yaml").exists():
            return parent
    return Path.cwd()


def _load_environments(project_root: Path) -> dict[str, EnvironmentProfile]:
    """Load environment profiles from environments.yaml, or the built-in defaults."""
    profiles_path = project_root / "config" / "environments.yaml"
    if profiles_path.exists():
        with open(profiles_path) as f:
            data = yaml.safe_load(f) or {}
        raw = data.get("environments", {})
    else:
        raw = DEFAULT_PROFILES

    return {name.upper(): EnvironmentProfile(**profile) for name, profile in raw.items()}


def _env(*keys: str, default: str = "") -> str:
    """Try multiple env var names, return the first one found."""
    for key in keys:
        val = os.environ.get(key, "")
        if val:
            return val.strip().strip('"')
    return default


def _load_settings() -> Settings:
    """Load settings from environment variables.

    Supports both CLINIC_API_* names and the dashboard's NEXT_PUBLIC_API_BASE_URL / NODE_ENV.
    """
    return Settings(
        environment=_env("CLINIC_API_ENV", "NODE_ENV", default="development"),
        base_url=_env("CLINIC_API_BASE_URL", "NEXT_PUBLIC_API_BASE_URL"),
        timeout=float(_env("CLINIC_API_TIMEOUT", default="30")),
        credentials_path=_env("CLINIC_API_CREDENTIALS", default="~/.clinic-api/cookies.txt"),
        refresh_lifetime_days=int(_env("CLINIC_API_REFRESH_LIFETIME_DAYS", default="30")),
        default_page_size=int(_env("CLINIC_API_PAGE_SIZE", default="20")),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache the full application configuration."""
    project_root = _find_project_root()

    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    settings = _load_settings()
    environments = _load_environments(project_root)

    return Config(settings=settings, environments=environments)
