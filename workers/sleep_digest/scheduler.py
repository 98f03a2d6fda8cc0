"""Cron-driven runner for the sleep digest sweep."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from croniter import croniter

from nyx.core.config import AppSettings, get_settings
from nyx.core.logging import configure_logging
from nyx.dependencies import (
    get_credential_codec,
    get_credential_store,
    get_sleep_client,
    get_sleep_notifier,
    get_token_refresh_guard,
)
from workers.sleep_digest.sweep import SleepDigestSweep

logger = logging.getLogger(__name__)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class SweepScheduler:
    """Sleep until the next cron fire time, run the sweep, repeat."""

    def __init__(
        self,
        sweep: SleepDigestSweep,
        cron_expression: str,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        if not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression!r}")
        self._sweep = sweep
        self._expression = cron_expression
        self._clock = clock

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        """Return the first fire time strictly after ``now``."""
        return croniter(self._expression, now or self._clock()).get_next(datetime)

    async def run_forever(self) -> None:
        """Start a sweep at every fire time; a fire time hit mid-sweep is skipped."""
        logger.info("Scheduling sleep digest on schedule: %s", self._expression)
        current: Optional[asyncio.Task] = None
        try:
            while True:
                now = self._clock()
                fire_at = self.next_run(now)
                await asyncio.sleep(max((fire_at - now).total_seconds(), 0.0))
                if self._sweep.is_running:
                    logger.warning(
                        "Previous sleep digest sweep still running; skipping %s", fire_at
                    )
                    continue
                current = asyncio.create_task(self._run_once())
        finally:
            if current is not None and not current.done():
                current.cancel()

    async def _run_once(self) -> None:
        try:
            await self._sweep.run()
        except Exception:  # pragma: no cover - run() contains per-user failures
            logger.exception("Sleep digest sweep crashed")


@lru_cache()
def get_sleep_digest_sweep() -> SleepDigestSweep:
    """Provide the sweep wired to the shared store and clients."""
    return SleepDigestSweep(
        store=get_credential_store(),
        codec=get_credential_codec(),
        guard=get_token_refresh_guard(),
        sleep_client=get_sleep_client(),
        notifier=get_sleep_notifier(),
    )


def build_scheduler(settings: AppSettings) -> SweepScheduler:
    return SweepScheduler(get_sleep_digest_sweep(), settings.cron_schedule)


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    await build_scheduler(settings).run_forever()


if __name__ == "__main__":  # pragma: no cover - manual execution path
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Sleep digest scheduler stopped")
