"""Centralized configuration via Pydantic BaseSettings.

Each concern has its own settings class with an env_prefix. Settings are
read once at startup and never change afterwards.
"""

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

GITHUB_COM_API_BASE_URL = "https://api.github.com/"


def _read_secret(path: str | Path, default: str | None = "") -> str | None:
    """Read a secret from a file, returning default if missing."""
    p = Path(path)
    if p.exists():
        return p.read_text().strip()
    return default


class GithubSettings(BaseSettings):
    """GitHub App authentication settings for a single organization."""

    base_url: str = GITHUB_COM_API_BASE_URL
    organization: str
    private_key_path: Path = Path("/secrets/private-key.pem")
    app_id: int
    webhook_secret: str | None = None

    # Read when webhook_secret is not set directly
    webhook_secret_file: str = "/secrets/webhook-secret"

    model_config = {"env_prefix": "GITHUB_"}

    @field_validator("base_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        # Relative endpoints are joined onto the base URL, which drops the
        # last path segment unless it ends with a slash
        return value if value.endswith("/") else value + "/"

    @model_validator(mode="after")
    def _load_file_secrets(self) -> "GithubSettings":
        """Load the webhook secret from a file if not set directly."""
        if self.webhook_secret is None:
            self.webhook_secret = _read_secret(self.webhook_secret_file, default=None)
        return self


class AutoprotectorSettings(BaseSettings):
    """Top-level service settings."""

    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 2342
    max_payload_bytes: int = Field(default=256 * 1024)

    model_config = {"env_prefix": "AUTOPROTECTOR_"}
