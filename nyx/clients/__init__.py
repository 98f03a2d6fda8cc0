"""Expose constructed client wrappers."""

from .fitbit_auth import FitbitOAuthClient, OAuthStateEncoder
from .fitbit_sleep import FitbitSleepClient
from .mailgun import MailgunClient

__all__ = [
    "FitbitOAuthClient",
    "FitbitSleepClient",
    "MailgunClient",
    "OAuthStateEncoder",
]
