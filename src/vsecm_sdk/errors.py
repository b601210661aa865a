"""
vsecm_sdk.errors

Exception hierarchy shared by every layer of the SDK.

Responsibilities:
- Separate configuration, authorization, transport, and protocol failures.
- Keep "secret not found" distinct from every other fetch failure.
"""

from __future__ import annotations


class SdkError(Exception):
    pass


class ConfigurationError(SdkError):
    """
    Identity-matching configuration is malformed or not anchored to the trust domain.
    Authorization decisions that hit this error are denied, never defaulted to allow.
    """


class IdentitySourceError(SdkError):
    pass


class UntrustedWorkloadError(SdkError):
    def __init__(self, *, scope: str, spiffe_id: str) -> None:
        super().__init__(f"{scope}: untrusted workload: '{spiffe_id}'")
        self.scope = scope
        self.spiffe_id = spiffe_id


class PeerNotAuthorizedError(SdkError):
    def __init__(self, spiffe_id: str | None) -> None:
        super().__init__(f"peer is not VSecM Safe: '{spiffe_id or '<no spiffe id>'}'")
        self.spiffe_id = spiffe_id


class SafeConnectionError(SdkError):
    """The service could not be reached (connect, TLS handshake, peer check, timeout)."""


class SafeStatusError(SdkError):
    def __init__(self, *, scope: str, status_code: int) -> None:
        super().__init__(f"{scope}: unexpected status from VSecM Safe: {status_code}")
        self.scope = scope
        self.status_code = status_code


class SafeDecodeError(SdkError):
    """The service responded, but the body was not the expected shape."""


class SecretNotFoundError(SdkError):
    def __init__(self) -> None:
        super().__init__("secret does not exist")


class SecretPersistError(SdkError):
    pass


# --- Module Notes -----------------------------------------------------------
# `SecretNotFoundError` is not a `SafeStatusError`: `except SafeStatusError` never
# swallows a 404 from fetch.
