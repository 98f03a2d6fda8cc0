"""
Mailgun client for sending digest emails.
"""

from __future__ import annotations

from typing import Optional

import httpx

from nyx.core.config import MailgunSettings, OAuthSettings
from nyx.core.errors import NotificationError


class MailgunClient:
    """Send plain-text messages through the Mailgun messages API."""

    def __init__(
        self,
        settings: MailgunSettings,
        oauth_settings: OAuthSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not settings.is_configured:
            raise ValueError("Mailgun domain and API key must be configured.")
        self._settings = settings
        self._timeout = oauth_settings.http_timeout_seconds
        self._transport = transport

    @property
    def sender(self) -> str:
        return f"{self._settings.sender_name}@{self._settings.domain}"

    async def send_message(self, *, to: str, subject: str, text: str) -> str:
        """Send a message and return the Mailgun message id."""
        url = f"{self._settings.base_url.rstrip('/')}/{self._settings.domain}/messages"
        data = {"from": self.sender, "to": to, "subject": subject, "text": text}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    url, data=data, auth=("api", self._settings.api_key or "")
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Mailgun delivery to {to} failed: {exc}") from exc

        try:
            return str(response.json().get("id", ""))
        except ValueError:
            return ""


__all__ = ["MailgunClient"]
