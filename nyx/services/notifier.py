"""Compose and deliver the morning sleep digest."""

from __future__ import annotations

import logging
from datetime import datetime
from textwrap import dedent
from typing import Optional

from nyx.clients.mailgun import MailgunClient
from nyx.models.sleep import SleepResponse

logger = logging.getLogger(__name__)

SUBJECT = "Last Night's Sleep"


def compose_sleep_message(sleep: SleepResponse) -> str:
    """Render the plain-text digest body."""
    main = sleep.main_sleep
    if sleep.summary.total_sleep_records == 0 or main is None:
        return dedent(
            """
            You have no sleep records from last night.
            Were you wearing your Fitbit?
            """
        ).strip()

    try:
        bedtime = datetime.fromisoformat(main.start_time).strftime("%I:%M%p").lstrip("0")
    except ValueError:
        bedtime = main.start_time or "unknown"
    hours_asleep = sleep.summary.total_minutes_asleep / 60

    return dedent(
        f"""
        Good morning! Here is how you slept last night.

        Fell asleep: {bedtime}
        Hours asleep: {hours_asleep:.2f}
        Efficiency: {main.efficiency}%
        Woke up {main.awake_count} times ({main.awake_duration} minutes awake)
        Restless {main.restless_count} times ({main.restless_duration} minutes restless)
        """
    ).strip()


class SleepNotifier:
    """Send the digest by email, or log it when no mail client is configured."""

    def __init__(self, mail_client: Optional[MailgunClient] = None) -> None:
        self._mail = mail_client

    async def notify(self, *, email: str, sleep: SleepResponse) -> None:
        body = compose_sleep_message(sleep)
        if self._mail is None:
            logger.info("Mail delivery disabled; digest for %s:\n%s", email, body)
            return
        logger.info("Sending sleep digest to %s", email)
        await self._mail.send_message(to=email, subject=SUBJECT, text=body)


__all__ = ["SUBJECT", "SleepNotifier", "compose_sleep_message"]
