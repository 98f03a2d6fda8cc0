try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest

from nyx.clients.fitbit_sleep import FitbitSleepClient
from nyx.clients.mailgun import MailgunClient
from nyx.core.config import MailgunSettings
from nyx.core.errors import NotificationError, SleepFetchError
from nyx.models.sleep import SleepResponse
from nyx.services.notifier import SUBJECT, SleepNotifier, compose_sleep_message

SLEEP_PAYLOAD = {
    "sleep": [
        {
            "logId": 1,
            "dateOfSleep": "2024-03-02",
            "startTime": "2024-03-01T23:05:00.000",
            "isMainSleep": True,
            "efficiency": 93,
            "awakeCount": 2,
            "awakeDuration": 5,
            "restlessCount": 11,
            "restlessDuration": 18,
            "minutesAsleep": 435,
            "minuteData": [{"dateTime": "23:05:00", "value": "2"}],
        }
    ],
    "summary": {"totalMinutesAsleep": 435, "totalSleepRecords": 1, "totalTimeInBed": 470},
}


@pytest.fixture
def mailgun_settings() -> MailgunSettings:
    return MailgunSettings(MAILGUN_DOMAIN="mg.example.com", MAILGUN_API_KEY="key-123")


def test_compose_message_summarises_main_sleep() -> None:
    body = compose_sleep_message(SleepResponse.model_validate(SLEEP_PAYLOAD))

    assert "Fell asleep: 11:05PM" in body
    assert "Hours asleep: 7.25" in body
    assert "Efficiency: 93%" in body
    assert "Woke up 2 times (5 minutes awake)" in body
    assert "Restless 11 times (18 minutes restless)" in body


def test_compose_message_without_records() -> None:
    body = compose_sleep_message(SleepResponse.model_validate({"sleep": [], "summary": {}}))

    assert body.startswith("You have no sleep records from last night.")


@pytest.mark.anyio
async def test_notifier_sends_digest_through_mailgun(mailgun_settings, oauth_settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "<msg-1@mg.example.com>", "message": "Queued"})

    client = MailgunClient(
        mailgun_settings, oauth_settings, transport=httpx.MockTransport(handler)
    )
    notifier = SleepNotifier(client)

    await notifier.notify(
        email="ada@example.com", sleep=SleepResponse.model_validate(SLEEP_PAYLOAD)
    )

    request = seen[0]
    assert str(request.url) == "https://api.mailgun.net/v3/mg.example.com/messages"
    form = parse_qs(request.content.decode())
    assert form["from"] == ["nyx@mg.example.com"]
    assert form["to"] == ["ada@example.com"]
    assert form["subject"] == [SUBJECT]
    assert "Efficiency: 93%" in form["text"][0]


@pytest.mark.anyio
async def test_mailgun_rejection_raises_notification_error(mailgun_settings, oauth_settings) -> None:
    client = MailgunClient(
        mailgun_settings,
        oauth_settings,
        transport=httpx.MockTransport(lambda _: httpx.Response(401, text="Forbidden")),
    )

    with pytest.raises(NotificationError):
        await client.send_message(to="ada@example.com", subject=SUBJECT, text="hi")


def test_mailgun_client_requires_configuration(oauth_settings) -> None:
    with pytest.raises(ValueError):
        MailgunClient(MailgunSettings(), oauth_settings)


@pytest.mark.anyio
async def test_notifier_without_mail_client_logs_digest(caplog) -> None:
    with caplog.at_level("INFO", logger="nyx.services.notifier"):
        await SleepNotifier().notify(
            email="ada@example.com", sleep=SleepResponse.model_validate(SLEEP_PAYLOAD)
        )

    assert "digest for ada@example.com" in caplog.text


@pytest.mark.anyio
async def test_sleep_client_requests_main_sleep_for_day() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=SLEEP_PAYLOAD)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as session:
        sleep = await FitbitSleepClient().fetch_sleep(session, day=date(2024, 3, 2))

    assert seen[0].url.path == "/1/user/-/sleep/date/2024-03-02.json"
    assert seen[0].url.params["isMainSleep"] == "true"
    assert sleep.main_sleep.minutes_asleep == 435


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [httpx.Response(500, text="oops"), httpx.Response(200, text="<html>")],
    ids=["server-error", "undecodable"],
)
async def test_sleep_client_failures(response) -> None:
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda _: response)) as session:
        with pytest.raises(SleepFetchError):
            await FitbitSleepClient().fetch_sleep(session, day=date(2024, 3, 2))
