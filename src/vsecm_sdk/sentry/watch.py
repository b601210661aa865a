"""
vsecm_sdk.sentry.watch

Continuous secret synchronization for the sidecar.

Responsibilities:
- Fetch the workload's secret on a fixed poll interval, retrying through `backoff.retry`.
- Persist each successful fetch atomically to the configured secrets file.
- Keep running through recoverable failures; stop only on configuration errors.
- Provide the `vsecm-sidecar` entrypoint.
"""

from __future__ import annotations

import asyncio
import os
import random
import tempfile
import time
from collections.abc import Callable
from pathlib import Path

from vsecm_sdk.backoff import Sleep, Strategy, retry
from vsecm_sdk.errors import ConfigurationError, IdentitySourceError, SdkError, SecretPersistError
from vsecm_sdk.identity.matcher import IdentityMatcher, MatcherConfig
from vsecm_sdk.identity.source import open_identity_source
from vsecm_sdk.observability.correlation import correlation_scope
from vsecm_sdk.observability.logging import configure_logging, get_logger
from vsecm_sdk.safe.channel import ChannelBuilder
from vsecm_sdk.safe.client import SafeClient
from vsecm_sdk.settings import Settings

log = get_logger(__name__)

WATCH_MAX_RETRIES = 10


def _write_atomic(path: Path, data: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


async def persist_secret(path: str | Path, data: str) -> None:
    """
    Readers of `path` see either the previous secret or the new one, never a partial write.
    """

    try:
        await asyncio.to_thread(_write_atomic, Path(path), data)
    except OSError as e:
        raise SecretPersistError(f"failed writing secrets to '{path}'") from e


class SecretsWatcher:
    def __init__(
        self,
        *,
        settings: Settings,
        client: SafeClient,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

    @property
    def strategy(self) -> Strategy:
        return Strategy(
            max_retries=WATCH_MAX_RETRIES,
            delay=self._settings.sidecar_poll_interval,
            exponential=False,
        )

    async def sync_once(self) -> None:
        response = await self._client.fetch()
        await persist_secret(self._settings.sidecar_secrets_path, response.data)

    async def run_cycle(self) -> bool:
        """
        One poll: fetch + persist with retries. Returns False when retries ran out.
        """

        with correlation_scope(component="sidecar"):
            try:
                await retry(
                    "sentry.watch",
                    self.sync_once,
                    self.strategy,
                    fatal=(ConfigurationError,),
                    sleep=self._sleep,
                    rng=self._rng,
                )
            except ConfigurationError:
                log.critical("secrets_sync_misconfigured")
                raise
            except SdkError as e:
                log.error(
                    "secrets_sync_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    next_poll_s=self._settings.sidecar_poll_interval,
                )
                return False

            log.info("secrets_synced", path=self._settings.sidecar_secrets_path)
            return True

    async def run(self, *, max_cycles: int | None = None) -> None:
        """
        Fixed-rate loop: each cycle starts one poll interval after the previous one started.
        A cycle that overran the interval (retries, exhaustion) is followed by a full interval.
        """

        interval = self._settings.sidecar_poll_interval
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            started = self._clock()
            await self.run_cycle()
            cycles += 1

            remaining = interval - (self._clock() - started)
            await self._sleep(remaining if remaining > 0 else interval)


def build_safe_client(settings: Settings) -> SafeClient:
    matcher = IdentityMatcher(MatcherConfig.from_settings(settings))
    # Misconfigured patterns abort startup instead of denying every request later.
    matcher.validate()
    channels = ChannelBuilder(
        settings=settings,
        source=open_identity_source(settings.spiffe_endpoint_socket),
        matcher=matcher,
    )
    return SafeClient(channels=channels)


def main() -> None:
    settings = Settings()
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    try:
        client = build_safe_client(settings)
    except (ConfigurationError, IdentitySourceError) as e:
        log.critical("startup_aborted", error=str(e))
        raise SystemExit(1) from e

    log.info("sidecar_started", poll_interval_s=settings.sidecar_poll_interval)
    try:
        asyncio.run(SecretsWatcher(settings=settings, client=client).run())
    except ConfigurationError as e:
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# The secrets file is the only durable state; concurrent readers of it are the
# application's concern.
