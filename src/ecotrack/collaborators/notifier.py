"""Outbound notification collaborator (fire-and-forget)."""

from __future__ import annotations

import time
from typing import Any, Optional, Protocol

import httpx
import orjson

from ecotrack.config import Settings
from ecotrack.errors import DownstreamUnavailable
from ecotrack.utils.logging import get_logger


logger = get_logger(__name__)

REWARD_GRANTED = "reward_granted"
TASK_ASSIGNED = "task_assigned"


class Notifier(Protocol):
    """Delivers core events to an external notification service."""

    def notify(self, event: str, payload: dict[str, Any], idempotency_key: str) -> None:
        """Send one event; raise DownstreamUnavailable on failure."""


class NullNotifier:
    """Notifier used when no webhook is configured."""

    def notify(self, event: str, payload: dict[str, Any], idempotency_key: str) -> None:
        logger.debug("notify.skipped event=%s key=%s", event, idempotency_key)


class WebhookNotifier:
    """POST events as JSON to a webhook, retrying 5xx and transport errors."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        backoff_seconds: float = 1.0,
    ) -> None:
        self.settings = settings or Settings()
        if not self.settings.notify_webhook_url:
            raise ValueError("NOTIFY_WEBHOOK_URL must be set for webhook notifications")
        self.client = client or httpx.Client(timeout=self.settings.notify_timeout_seconds)
        self.backoff_seconds = backoff_seconds

    def notify(self, event: str, payload: dict[str, Any], idempotency_key: str) -> None:
        body = orjson.dumps({"event": event, "payload": payload})
        headers = {
            "Content-Type": "application/json",
            # Receivers dedupe on this, so retries are safe.
            "Idempotency-Key": f"{event}:{idempotency_key}",
        }
        retries = self.settings.notify_max_retries
        attempt = 0
        while True:
            try:
                response = self.client.post(
                    self.settings.notify_webhook_url,
                    content=body,
                    headers=headers,
                )
                if response.status_code >= 500 and attempt < retries:
                    attempt += 1
                    self._sleep(attempt)
                    continue
                response.raise_for_status()
                return
            except httpx.HTTPStatusError as exc:
                raise DownstreamUnavailable(
                    f"notification {event} rejected with {exc.response.status_code}"
                ) from exc
            except httpx.RequestError as exc:
                attempt += 1
                if attempt > retries:
                    raise DownstreamUnavailable(f"notification {event} failed: {exc}") from exc
                self._sleep(attempt)

    def _sleep(self, attempt: int) -> None:
        if self.backoff_seconds > 0:
            time.sleep(min(self.backoff_seconds * 2**attempt, 8))


def build_notifier(settings: Settings) -> Notifier:
    if settings.notify_webhook_url:
        return WebhookNotifier(settings)
    return NullNotifier()


def notify_safely(
    notifier: Notifier,
    event: str,
    payload: dict[str, Any],
    idempotency_key: str,
) -> bool:
    """Send a notification; log and swallow downstream failures."""
    try:
        notifier.notify(event, payload, idempotency_key)
    except DownstreamUnavailable as exc:
        logger.warning("notify.failed event=%s key=%s error=%s", event, idempotency_key, exc)
        return False
    return True
