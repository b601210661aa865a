"""
vsecm_sdk.safe.client

Secret exchange with VSecM Safe.

Responsibilities:
- Fetch the secret bound to this workload (workload identity required).
- Store an unassociated `raw:` secret for later distribution (clerk identity required).
- Translate transport / status / decode outcomes into typed SDK errors.
"""

from __future__ import annotations

import httpx
from pydantic import ValidationError

from vsecm_sdk.errors import (
    PeerNotAuthorizedError,
    SafeConnectionError,
    SafeDecodeError,
    SafeStatusError,
    SecretNotFoundError,
)
from vsecm_sdk.identity.models import Role
from vsecm_sdk.observability.correlation import correlation_scope
from vsecm_sdk.observability.logging import get_logger
from vsecm_sdk.safe.channel import ChannelBuilder, SecureChannel
from vsecm_sdk.safe.models import SecretFetchResponse, SecretStoreRequest, SecretStoreResponse

log = get_logger(__name__)

SECRETS_PATH = "workload/v1/secrets"

# Marks a secret as not bound to any workload; an operator distributes it later.
RAW_KEY_PREFIX = "raw:"


class SafeClient:
    """
    Every call opens its own channel and closes it on every exit path.
    """

    def __init__(self, *, channels: ChannelBuilder) -> None:
        self._channels = channels

    async def fetch(self) -> SecretFetchResponse:
        channel = await self._channels.open(scope="fetch", role=Role.WORKLOAD)
        async with channel:
            r = await self._send(channel, "fetch", "GET")

            if r.status_code == httpx.codes.NOT_FOUND:
                raise SecretNotFoundError()
            if not r.is_success:
                raise SafeStatusError(scope="fetch", status_code=r.status_code)

            try:
                return SecretFetchResponse.model_validate_json(r.content)
            except ValidationError as e:
                raise SafeDecodeError("fetch: unable to deserialize response") from e

    async def store(self, *, key: str, value: str) -> SecretStoreResponse:
        with correlation_scope(operation="store"):
            return await self._store(key=key, value=value)

    async def _store(self, *, key: str, value: str) -> SecretStoreResponse:
        # Role check happens inside `open()`, before any connection is attempted.
        channel = await self._channels.open(scope="store", role=Role.CLERK)
        payload = SecretStoreRequest(key=RAW_KEY_PREFIX + key, value=value)

        async with channel:
            r = await self._send(
                channel,
                "store",
                "POST",
                content=payload.to_json(),
                headers={"Content-Type": "application/json"},
            )

            # Store is create/overwrite: a 404 is just another failure here.
            if not r.is_success:
                raise SafeStatusError(scope="store", status_code=r.status_code)

            if not r.content.strip():
                return SecretStoreResponse()
            try:
                return SecretStoreResponse.model_validate_json(r.content)
            except ValidationError as e:
                raise SafeDecodeError("store: unable to deserialize response") from e

    async def _send(
        self,
        channel: SecureChannel,
        scope: str,
        method: str,
        *,
        content: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        log.debug("safe_request", scope=scope, method=method, spiffe_id=channel.spiffe_id)
        try:
            return await channel.client.request(
                method, SECRETS_PATH, content=content, headers=headers
            )
        except httpx.DecodingError as e:
            raise SafeDecodeError(f"{scope}: unable to read the response body") from e
        except PeerNotAuthorizedError as e:
            raise SafeConnectionError(
                f"{scope}: peer is not an authorized VSecM Safe instance"
            ) from e
        except httpx.HTTPError as e:
            raise SafeConnectionError(
                f"{scope}: problem connecting to VSecM Safe API endpoint"
            ) from e


# --- Module Notes -----------------------------------------------------------
# Retrying is the caller's decision (see `vsecm_sdk.backoff`); this client makes exactly
# one attempt per call.
