"""
vsecm_sdk.identity.source

Identity source boundary.

Responsibilities:
- Define the `IdentitySource` protocol the channel builder depends on.
- Load SVID material kept on disk by a SPIFFE helper (rotated in place).
- Extract the SPIFFE ID from the leaf certificate's URI SAN.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse

from cryptography import x509

from vsecm_sdk.errors import IdentitySourceError
from vsecm_sdk.identity.models import X509Context

SVID_CERT_FILE = "svid.pem"
SVID_KEY_FILE = "svid_key.pem"
SVID_BUNDLE_FILE = "svid_bundle.pem"


class IdentitySource(Protocol):
    async def fetch_x509_context(self) -> X509Context: ...


class FileIdentitySource:
    """
    Reads `svid.pem`, `svid_key.pem` and `svid_bundle.pem` from a directory on every call,
    so a rotated SVID is picked up by the next channel without any notification.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    @property
    def directory(self) -> Path:
        return self._dir

    async def fetch_x509_context(self) -> X509Context:
        # File reads are blocking; keep them off the event loop.
        return await asyncio.to_thread(self._load)

    def _load(self) -> X509Context:
        try:
            chain = (self._dir / SVID_CERT_FILE).read_bytes()
            key = (self._dir / SVID_KEY_FILE).read_bytes()
            bundle = (self._dir / SVID_BUNDLE_FILE).read_bytes()
        except OSError as e:
            raise IdentitySourceError(
                f"failed reading SVID material from '{self._dir}'"
            ) from e

        return X509Context(
            spiffe_id=spiffe_id_from_pem(chain),
            cert_chain_pem=chain,
            private_key_pem=key,
            bundle_pem=bundle,
        )


def spiffe_id_from_pem(chain_pem: bytes) -> str:
    """
    Returns the single `spiffe://` URI SAN of the first (leaf) certificate in the chain.
    """

    try:
        certs = x509.load_pem_x509_certificates(chain_pem)
    except ValueError as e:
        raise IdentitySourceError("SVID certificate chain is not valid PEM") from e
    if not certs:
        raise IdentitySourceError("SVID certificate chain is empty")

    try:
        san = certs[0].extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound as e:
        raise IdentitySourceError("SVID leaf certificate has no SAN extension") from e

    ids = [
        uri
        for uri in san.value.get_values_for_type(x509.UniformResourceIdentifier)
        if uri.startswith("spiffe://")
    ]
    if len(ids) != 1:
        raise IdentitySourceError(
            f"SVID leaf certificate must carry exactly one SPIFFE ID, found {len(ids)}"
        )
    return ids[0]


def open_identity_source(address: str) -> IdentitySource:
    """
    `file:///path/to/dir` or a bare directory path. Other schemes need an external adapter.
    """

    parsed = urlparse(address)
    if parsed.scheme in ("", "file"):
        directory = parsed.path if parsed.scheme == "file" else address
        if not directory:
            raise IdentitySourceError(f"identity source address has no path: '{address}'")
        return FileIdentitySource(directory)

    raise IdentitySourceError(
        f"unsupported identity source address '{address}': "
        "expected a file:// URL or a directory path"
    )


# --- Module Notes -----------------------------------------------------------
# Talking to the SPIFFE Workload API over its gRPC socket is out of scope here; any
# object with an async `fetch_x509_context()` can be passed to the channel builder.
