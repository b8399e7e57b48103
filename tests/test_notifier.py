import httpx
import orjson
import pytest

from ecotrack.collaborators.notifier import (
    REWARD_GRANTED,
    NullNotifier,
    WebhookNotifier,
    build_notifier,
    notify_safely,
)
from ecotrack.config import Settings
from ecotrack.errors import DownstreamUnavailable


WEBHOOK = "https://hooks.example.test/ecotrack"


def _notifier(handler, retries: int = 2) -> WebhookNotifier:
    settings = Settings(notify_webhook_url=WEBHOOK, notify_max_retries=retries)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return WebhookNotifier(settings, client=client, backoff_seconds=0)


def test_posts_json_with_idempotency_key():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    _notifier(handler).notify(REWARD_GRANTED, {"report_id": "r1", "coins": 20}, "r1")

    assert len(seen) == 1
    request = seen[0]
    assert str(request.url) == WEBHOOK
    assert request.headers["Idempotency-Key"] == "reward_granted:r1"
    assert orjson.loads(request.content) == {
        "event": "reward_granted",
        "payload": {"report_id": "r1", "coins": 20},
    }


def test_server_errors_are_retried():
    statuses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(next(statuses))

    _notifier(handler, retries=2).notify(REWARD_GRANTED, {}, "r2")


def test_gives_up_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(DownstreamUnavailable):
        _notifier(handler, retries=2).notify(REWARD_GRANTED, {}, "r3")
    assert len(calls) == 3


def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400)

    with pytest.raises(DownstreamUnavailable):
        _notifier(handler).notify(REWARD_GRANTED, {}, "r4")
    assert len(calls) == 1


def test_transport_errors_raise_after_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DownstreamUnavailable):
        _notifier(handler, retries=1).notify(REWARD_GRANTED, {}, "r5")
    assert len(calls) == 2


def test_notify_safely_reports_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    assert notify_safely(_notifier(handler), REWARD_GRANTED, {}, "r6") is False
    assert notify_safely(NullNotifier(), REWARD_GRANTED, {}, "r6") is True


def test_build_notifier_without_webhook():
    assert isinstance(build_notifier(Settings(notify_webhook_url=None)), NullNotifier)
    assert isinstance(build_notifier(Settings(notify_webhook_url=WEBHOOK)), WebhookNotifier)


def test_webhook_notifier_requires_url():
    with pytest.raises(ValueError):
        WebhookNotifier(Settings(notify_webhook_url=None))
