"""
tests.conftest

Shared fixtures for the SDK test suite.

Responsibilities:
- Keep the process environment from leaking into `Settings`.
- Wire the fake VSecM Safe and identity matcher into ready-to-use fixtures.
"""

from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI
from support import TransportRecorder, create_fake_safe

from vsecm_sdk.identity.matcher import IdentityMatcher, MatcherConfig
from vsecm_sdk.settings import Settings

_ENV_VARS = (
    "SPIFFE_ENDPOINT_SOCKET",
    "SPIFFE_TRUST_DOMAIN",
    "VSECM_SAFE_ENDPOINT_URL",
    "VSECM_SAFE_REQUEST_TIMEOUT",
    "VSECM_SIDECAR_SECRETS_PATH",
    "VSECM_SIDECAR_POLL_INTERVAL",
    "VSECM_INIT_CONTAINER_POLL_INTERVAL",
    "VSECM_INIT_CONTAINER_WAIT_BEFORE_EXIT",
    "VSECM_SPIFFEID_PREFIX_WORKLOAD",
    "VSECM_SPIFFEID_PREFIX_CLERK",
    "VSECM_SPIFFEID_PREFIX_SAFE",
    "VSECM_WORKLOAD_NAME_REGEXP",
    "VSECM_LOG_LEVEL",
    "VSECM_SERVICE_NAME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        safe_endpoint_url="https://safe.test/",
        sidecar_secrets_path=str(tmp_path / "secrets.json"),
    )


@pytest.fixture
def matcher(settings: Settings) -> IdentityMatcher:
    return IdentityMatcher(MatcherConfig.from_settings(settings))


@pytest.fixture
def fake_safe() -> FastAPI:
    return create_fake_safe()


@pytest.fixture
def recorder(fake_safe: FastAPI) -> TransportRecorder:
    return TransportRecorder(lambda: httpx.ASGITransport(app=fake_safe))


# --- Module Notes -----------------------------------------------------------
# Tests never touch a real SPIFFE agent, real sockets, or wall-clock sleeps.
