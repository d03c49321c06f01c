"""
BurnEnv Configuration — Admission limits and validated server settings.

Reads overrides from environment variables:
    BURNENV_HOST             = <listen address>
    BURNENV_PORT             = <integer>
    BURNENV_BASE_URL         = <public base url used to build links>
    BURNENV_MAX_BODY_BYTES   = <integer>
    BURNENV_SWEEP_INTERVAL   = <seconds between expiry sweeps>
    BURNENV_SWEEP_BATCH      = <entries examined per sweep chunk>
    BURNENV_EXPOSE_REASONS   = <true|false>

Security Note:
    Exposing distinct expired/burned/not-found reasons helps debugging
    but lets a caller probe whether an identifier ever existed.
    It is off by default.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("burnenv.config")

_TRUE_VALUES = ("1", "true", "yes", "on")


class PolicyLimits(BaseModel):
    """Bounds enforced by the admission policy."""

    # base64 text length; 2 MiB of base64 is roughly 1.5 MiB decoded
    max_ciphertext_len: int = Field(default=2 * 1024 * 1024, ge=1)
    max_salt_len: int = Field(default=64, ge=1)
    max_iv_len: int = Field(default=64, ge=1)
    min_expiry_seconds: int = Field(default=60, ge=1)
    max_expiry_seconds: int = Field(default=24 * 60 * 60, ge=1)
    min_max_views: int = Field(default=1, ge=1)
    max_max_views: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def validate_ranges(self) -> "PolicyLimits":
        """Reject inverted expiry and view-count windows."""
        if self.min_expiry_seconds > self.max_expiry_seconds:
            raise ValueError(
                f"min_expiry_seconds ({self.min_expiry_seconds}) is greater "
                f"than max_expiry_seconds ({self.max_expiry_seconds})"
            )
        if self.min_max_views > self.max_max_views:
            raise ValueError(
                f"min_max_views ({self.min_max_views}) is greater "
                f"than max_max_views ({self.max_max_views})"
            )
        return self


class BurnConfig(BaseModel):
    """Validated drop server configuration."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1, le=65535)
    base_url: str = Field(default="http://localhost:8080")
    max_body_bytes: int = Field(default=2 * 1024 * 1024, ge=1024)
    sweep_interval: float = Field(default=30.0, gt=0)
    sweep_batch: int = Field(default=1024, ge=1)
    expose_reasons: bool = Field(default=False)
    limits: PolicyLimits = Field(default_factory=PolicyLimits)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) base url and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @classmethod
    def from_env(cls) -> "BurnConfig":
        """Create BurnConfig by loading values from environment.

        Unset variables fall back to the field defaults.

        Returns:
            Populated BurnConfig instance.
        """
        mapping = {
            "host": "BURNENV_HOST",
            "port": "BURNENV_PORT",
            "base_url": "BURNENV_BASE_URL",
            "max_body_bytes": "BURNENV_MAX_BODY_BYTES",
            "sweep_interval": "BURNENV_SWEEP_INTERVAL",
            "sweep_batch": "BURNENV_SWEEP_BATCH",
        }
        values: dict = {}
        for field, env_name in mapping.items():
            raw = os.environ.get(env_name)
            if raw is not None:
                values[field] = raw
        raw = os.environ.get("BURNENV_EXPOSE_REASONS")
        if raw is not None:
            values["expose_reasons"] = raw.strip().lower() in _TRUE_VALUES
        logger.debug("Loaded config overrides from environment: %s", sorted(values))
        return cls(**values)
