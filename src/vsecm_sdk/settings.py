"""
vsecm_sdk.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for identity, transport, and sync layers.
- Fall back to safe defaults when a variable is unset, empty, or unparsable.
- Stay immutable: one instance is built by the entrypoint and passed down explicitly.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(IntEnum):
    OFF = 0
    FATAL = 1
    ERROR = 2
    WARN = 3
    INFO = 4
    AUDIT = 5
    DEBUG = 6
    TRACE = 7


_SIDECAR_POLL_INTERVAL_MS = 20_000
_INIT_CONTAINER_POLL_INTERVAL_MS = 5_000


class Settings(BaseSettings):
    """
    Every field maps to the environment variable named in its alias.
    Durations arrive in milliseconds (or seconds where noted) and are exposed as seconds.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        frozen=True,
    )

    service_name: str = Field(
        default="vsecm-sdk", validation_alias=AliasChoices("VSECM_SERVICE_NAME", "service_name")
    )
    log_level: LogLevel = Field(
        default=LogLevel.WARN, validation_alias=AliasChoices("VSECM_LOG_LEVEL", "log_level")
    )

    # Identity
    spiffe_endpoint_socket: str = Field(
        default="file:///spiffe-workload-api",
        validation_alias=AliasChoices("SPIFFE_ENDPOINT_SOCKET", "spiffe_endpoint_socket"),
    )
    spiffe_trust_domain: str = Field(
        default="vsecm.com",
        validation_alias=AliasChoices("SPIFFE_TRUST_DOMAIN", "spiffe_trust_domain"),
    )
    spiffeid_prefix_workload: str = Field(
        default="^spiffe://vsecm.com/workload/[^/]+/ns/[^/]+/sa/[^/]+/n/[^/]+$",
        validation_alias=AliasChoices("VSECM_SPIFFEID_PREFIX_WORKLOAD", "spiffeid_prefix_workload"),
    )
    spiffeid_prefix_clerk: str = Field(
        default="^spiffe://vsecm.com/workload/vsecm-clerk/ns/vsecm-clerk/sa/vsecm-safe/n/[^/]+$",
        validation_alias=AliasChoices("VSECM_SPIFFEID_PREFIX_CLERK", "spiffeid_prefix_clerk"),
    )
    spiffeid_prefix_safe: str = Field(
        default="^spiffe://vsecm.com/workload/vsecm-safe/ns/vsecm-system/sa/vsecm-safe/n/[^/]+$",
        validation_alias=AliasChoices("VSECM_SPIFFEID_PREFIX_SAFE", "spiffeid_prefix_safe"),
    )
    workload_name_regexp: str = Field(
        default="^spiffe://vsecm.com/workload/([^/]+)/ns/[^/]+/sa/[^/]+/n/[^/]+$",
        validation_alias=AliasChoices("VSECM_WORKLOAD_NAME_REGEXP", "workload_name_regexp"),
    )

    # Safe
    safe_endpoint_url: str = Field(
        default="https://vsecm-safe.vsecm-system.svc.cluster.local:8443/",
        validation_alias=AliasChoices("VSECM_SAFE_ENDPOINT_URL", "safe_endpoint_url"),
    )
    safe_request_timeout: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("VSECM_SAFE_REQUEST_TIMEOUT", "safe_request_timeout"),
    )

    # Sidecar / init container
    sidecar_secrets_path: str = Field(
        default="/opt/vsecm/secrets.json",
        validation_alias=AliasChoices("VSECM_SIDECAR_SECRETS_PATH", "sidecar_secrets_path"),
    )
    sidecar_poll_interval_ms: int = Field(
        default=_SIDECAR_POLL_INTERVAL_MS,
        validation_alias=AliasChoices("VSECM_SIDECAR_POLL_INTERVAL", "sidecar_poll_interval_ms"),
    )
    init_container_poll_interval_ms: int = Field(
        default=_INIT_CONTAINER_POLL_INTERVAL_MS,
        validation_alias=AliasChoices(
            "VSECM_INIT_CONTAINER_POLL_INTERVAL", "init_container_poll_interval_ms"
        ),
    )
    init_container_wait_before_exit_ms: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices(
            "VSECM_INIT_CONTAINER_WAIT_BEFORE_EXIT", "init_container_wait_before_exit_ms"
        ),
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _coerce_log_level(cls, value: Any) -> LogLevel:
        # Anything outside fatal..trace (including "off") resolves to warn.
        try:
            level = int(value)
        except (TypeError, ValueError):
            return LogLevel.WARN
        if level <= LogLevel.OFF or level > LogLevel.TRACE:
            return LogLevel.WARN
        return LogLevel(level)

    @field_validator("sidecar_poll_interval_ms", mode="before")
    @classmethod
    def _coerce_sidecar_interval(cls, value: Any) -> int:
        return _positive_int_or(value, _SIDECAR_POLL_INTERVAL_MS)

    @field_validator("init_container_poll_interval_ms", mode="before")
    @classmethod
    def _coerce_init_interval(cls, value: Any) -> int:
        return _positive_int_or(value, _INIT_CONTAINER_POLL_INTERVAL_MS)

    @property
    def sidecar_poll_interval(self) -> float:
        return self.sidecar_poll_interval_ms / 1000

    @property
    def init_container_poll_interval(self) -> float:
        return self.init_container_poll_interval_ms / 1000

    @property
    def init_container_wait_before_exit(self) -> float:
        return self.init_container_wait_before_exit_ms / 1000


def _positive_int_or(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


# --- Module Notes -----------------------------------------------------------
# No cached accessor lives here: entrypoints construct `Settings()` once and hand it
# to every component that needs it.
