"""
Thin wrapper around the Fitbit sleep log API.
"""

from __future__ import annotations

from datetime import date

import httpx
from authlib.integrations.base_client import OAuthError
from pydantic import ValidationError

from nyx.core.errors import SleepFetchError
from nyx.models.sleep import SleepResponse


class FitbitSleepClient:
    """Fetch a user's sleep log with an authenticated session."""

    SLEEP_URL = "https://api.fitbit.com/1/user/-/sleep/date/{day}.json"

    async def fetch_sleep(self, session: httpx.AsyncClient, *, day: date) -> SleepResponse:
        """Return the main sleep recorded for ``day``."""
        url = self.SLEEP_URL.format(day=day.isoformat())
        try:
            response = await session.get(url, params={"isMainSleep": "true"})
            response.raise_for_status()
        except (httpx.HTTPError, OAuthError) as exc:
            raise SleepFetchError(f"Fitbit sleep request failed: {exc}") from exc

        try:
            return SleepResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SleepFetchError("Fitbit returned an undecodable sleep payload.") from exc


__all__ = ["FitbitSleepClient"]
