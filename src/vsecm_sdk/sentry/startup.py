"""
vsecm_sdk.sentry.startup

Readiness poller for init containers.

Responsibilities:
- Tick on the init-container poll interval until the secrets file is materialized.
- Wait a grace period, then return so the process can exit successfully.
- Provide the `vsecm-init-container` entrypoint, which refuses to start on misconfigured
  identity patterns like the sidecar does.
"""

from __future__ import annotations

import asyncio
import stat
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

from vsecm_sdk.backoff import Sleep
from vsecm_sdk.errors import ConfigurationError
from vsecm_sdk.identity.matcher import IdentityMatcher, MatcherConfig
from vsecm_sdk.observability.correlation import correlation_scope
from vsecm_sdk.observability.logging import configure_logging, get_logger
from vsecm_sdk.settings import Settings

log = get_logger(__name__)

ReadinessCheck = Callable[[], Awaitable[bool]]


def _non_empty_file(path: Path) -> bool:
    try:
        st = path.stat()
    except FileNotFoundError:
        return False
    return stat.S_ISREG(st.st_mode) and st.st_size > 0


async def secrets_materialized(path: str | Path) -> bool:
    return await asyncio.to_thread(_non_empty_file, Path(path))


async def wait_until_ready(
    *,
    settings: Settings,
    is_ready: ReadinessCheck | None = None,
    wait_before_exit: float | None = None,
    sleep: Sleep = asyncio.sleep,
) -> None:
    """
    Returns only once `is_ready()` reported True (and the grace period has passed).
    An `OSError` from the check counts as "not ready yet".
    """

    interval = settings.init_container_poll_interval
    grace = wait_before_exit
    if grace is None:
        grace = settings.init_container_wait_before_exit
    check = is_ready or (lambda: secrets_materialized(settings.sidecar_secrets_path))

    while True:
        await sleep(interval)

        with correlation_scope(component="init-container"):
            try:
                ready = await check()
            except OSError as e:
                log.warning("readiness_check_failed", error=str(e))
                ready = False

            log.debug("init_tick", ready=ready)
            if ready:
                log.info("initialized", wait_before_exit_s=grace)
                await sleep(grace)
                return


def main() -> None:
    settings = Settings()
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    try:
        IdentityMatcher(MatcherConfig.from_settings(settings)).validate()
    except ConfigurationError as e:
        log.critical("startup_aborted", error=str(e))
        raise SystemExit(1) from e

    log.info("init_container_waiting", path=settings.sidecar_secrets_path)
    asyncio.run(wait_until_ready(settings=settings))
    sys.exit(0)


if __name__ == "__main__":
    main()


# --- Module Notes -----------------------------------------------------------
# Unlike the sidecar, this poller has a bounded lifetime: its only exit is success.
