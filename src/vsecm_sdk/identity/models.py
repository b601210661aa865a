"""
vsecm_sdk.identity.models

Identity domain models.

Responsibilities:
- Define the roles an identity can be classified into.
- Define the X.509 material handed out by an identity source.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class Role(StrEnum):
    WORKLOAD = "workload"
    CLERK = "clerk"
    SAFE = "safe"


@dataclass(frozen=True, slots=True)
class X509Context:
    """
    Current SVID and trust bundle. Read fresh for every channel; never persisted.
    """

    spiffe_id: str
    cert_chain_pem: bytes = field(repr=False)
    private_key_pem: bytes = field(repr=False)
    bundle_pem: bytes = field(repr=False)


# --- Module Notes -----------------------------------------------------------
# Keep these models free of I/O so both the matcher and the channel builder can share them.
