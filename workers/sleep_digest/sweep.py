"""One pass over every stored user: fetch last night's sleep and email it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List

from nyx.clients.fitbit_sleep import FitbitSleepClient
from nyx.core.errors import (
    CredentialPersistError,
    CredentialStoreError,
    NotificationError,
    SleepFetchError,
    TokenDeserializeError,
)
from nyx.models.credential import CredentialRecord
from nyx.models.sleep import SleepResponse
from nyx.services.credential_codec import CredentialCodec
from nyx.services.notifier import SleepNotifier
from nyx.services.refresh_guard import TokenRefreshGuard
from nyx.stores.base import CredentialStore

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Outcome of a sweep, by user identity."""

    notified: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class SleepDigestSweep:
    """Process every stored user once, isolating failures per user.

    Failed users are not retried within a run; the next scheduled run picks
    them up again.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: CredentialCodec,
        guard: TokenRefreshGuard,
        sleep_client: FitbitSleepClient,
        notifier: SleepNotifier,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._codec = codec
        self._guard = guard
        self._sleep_client = sleep_client
        self._notifier = notifier
        self._today = today
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> SweepReport:
        """Run one sweep. Never raises for per-user or store failures."""
        report = SweepReport()
        if self._running:
            logger.warning("Sleep digest sweep already running; ignoring trigger")
            return report

        self._running = True
        try:
            await self._sweep(report)
        finally:
            self._running = False

        logger.info(
            "Sleep digest sweep finished: %d notified, %d skipped, %d failed",
            len(report.notified),
            len(report.skipped),
            len(report.failed),
        )
        return report

    async def _sweep(self, report: SweepReport) -> None:
        logger.info("Starting sleep digest sweep")
        try:
            records = self._store.get_all()
        except CredentialStoreError as exc:
            logger.error("Fetching all users failed: %s", exc)
            return

        if not records:
            logger.info("No users found, ending sweep")
            return

        day = self._today()
        for record in records:
            await self._process(record, day, report)

    async def _process(self, record: CredentialRecord, day: date, report: SweepReport) -> None:
        identity = record.identity
        if not record.token:
            logger.warning("No linked Fitbit account for %s; skipping", identity)
            report.skipped.append(identity)
            return

        try:
            credential = self._codec.loads(record.token)
        except TokenDeserializeError as exc:
            logger.warning("Stored token for %s is unreadable; skipping: %s", identity, exc)
            report.skipped.append(identity)
            return

        try:
            sleep: SleepResponse = await self._guard.with_guarded_credential(
                identity,
                credential,
                lambda session: self._sleep_client.fetch_sleep(session, day=day),
            )
        except (CredentialPersistError, CredentialStoreError, SleepFetchError) as exc:
            logger.error("Failed to get sleep data for %s: %s", identity, exc)
            report.failed.append(identity)
            return
        except Exception:
            logger.exception("Unexpected error fetching sleep data for %s", identity)
            report.failed.append(identity)
            return

        try:
            await self._notifier.notify(email=identity, sleep=sleep)
        except NotificationError as exc:
            logger.error("Failed to send digest to %s: %s", identity, exc)
            report.failed.append(identity)
            return
        except Exception:
            logger.exception("Unexpected error sending digest to %s", identity)
            report.failed.append(identity)
            return

        report.notified.append(identity)


__all__ = ["SleepDigestSweep", "SweepReport"]
