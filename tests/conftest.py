from typing import Any

import pytest

from ecotrack.config import Settings
from ecotrack.errors import DownstreamUnavailable
from ecotrack.models import Actor, Role
from ecotrack.service import EcoTrackService
from ecotrack.store.memory import MemoryLedgerStore


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, dict[str, Any], str]] = []

    def notify(self, event: str, payload: dict[str, Any], idempotency_key: str) -> None:
        if self.fail:
            raise DownstreamUnavailable("notification service down")
        self.sent.append((event, payload, idempotency_key))

    def events(self, name: str) -> list[dict[str, Any]]:
        return [payload for event, payload, _ in self.sent if event == name]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://demo.supabase.co",
        notify_webhook_url=None,
        reward_max_retries=2,
        leaderboard_refresh_seconds=30,
    )


@pytest.fixture
def store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, settings, notifier) -> EcoTrackService:
    return EcoTrackService(store, settings=settings, notifier=notifier)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def citizen(service):
    return service.register_profile("eco_ella", full_name="Ella Green")


def waste_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Old monitor by the bus stop",
        "category": "e-waste",
        "description": "CRT monitor and a keyboard",
        "location_lat": 28.4595,
        "location_lng": 77.0266,
        "location_address": "123 Green Park, Sector 14",
    }
    payload.update(overrides)
    return payload


def dirty_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Overflowing bins behind the market",
        "description": "Plastic bags all over the lane",
        "location_lat": 28.6139,
        "location_lng": 77.2090,
    }
    payload.update(overrides)
    return payload


def agent_actor(agent) -> Actor:
    return Actor(id=agent.id, role=Role.AGENT)
