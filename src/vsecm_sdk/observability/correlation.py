"""
vsecm_sdk.observability.correlation

Correlation ids for log enrichment.

Responsibilities:
- Generate short, cryptographically random correlation ids.
- Bind them (plus any extra fields) into structlog contextvars for one unit of work.
"""

from __future__ import annotations

import secrets
import string
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

_ALPHABET = string.ascii_letters + string.digits


def new_correlation_id(length: int = 8) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


@contextmanager
def correlation_scope(**fields: Any) -> Iterator[str]:
    """
    Binds `correlation_id` (and `fields`) for the duration of the block.
    The previous context is restored on exit, so scopes nest safely.
    """

    correlation_id = new_correlation_id()
    with structlog.contextvars.bound_contextvars(correlation_id=correlation_id, **fields):
        yield correlation_id


# --- Module Notes -----------------------------------------------------------
# Each sync cycle, store call, and readiness tick opens one scope; nothing leaks into
# the next unit of work once the block exits.
