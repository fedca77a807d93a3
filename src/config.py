"""Relay settings, overridable via environment variables."""

from __future__ import annotations

import os

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

DEFAULT_WEBHOOK_URL = "http://localhost:5678/webhook/web-chatbot"
DEFAULT_ALLOWED_ORIGIN = "http://localhost:4321"

_HTTP_URL = TypeAdapter(AnyHttpUrl)


class RelaySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    webhook_url: str = DEFAULT_WEBHOOK_URL
    # Deadline for one whole downstream call, connect through body read.
    timeout_seconds: float = Field(default=10.0, gt=0, allow_inf_nan=False)
    allowed_origin: str = DEFAULT_ALLOWED_ORIGIN
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    audit_log_path: str | None = None
    audit_log_max_bytes: int = Field(default=10_485_760, gt=0)
    audit_log_backup_count: int = Field(default=5, ge=1)

    @field_validator("webhook_url")
    @classmethod
    def webhook_url_is_http(cls, value: str) -> str:
        # Kept as the string given; only scheme and host are checked.
        _HTTP_URL.validate_python(value)
        return value

    @classmethod
    def from_env(cls) -> RelaySettings:
        """Build settings from environment variables, falling back to defaults."""
        env = os.environ
        return cls(
            webhook_url=env.get("WEBHOOK_URL", DEFAULT_WEBHOOK_URL),
            timeout_seconds=env.get("RELAY_TIMEOUT_SECONDS", "10"),
            allowed_origin=env.get("ALLOWED_ORIGIN", DEFAULT_ALLOWED_ORIGIN),
            host=env.get("RELAY_HOST", "0.0.0.0"),
            port=env.get("RELAY_PORT", "8080"),
            audit_log_path=env.get("AUDIT_LOG_PATH") or None,
            audit_log_max_bytes=env.get("AUDIT_LOG_MAX_BYTES", "10485760"),
            audit_log_backup_count=env.get("AUDIT_LOG_BACKUP_COUNT", "5"),
        )
