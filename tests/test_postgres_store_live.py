import os
import uuid

import pytest

from ecotrack.config import Settings
from ecotrack.errors import Conflict
from ecotrack.models import Actor, Role, TaskStatus
from ecotrack.service import EcoTrackService
from ecotrack.store.postgres import PostgresLedgerStore, apply_schema

from conftest import RecordingNotifier, waste_payload


pytestmark = pytest.mark.skipif(
    not os.getenv("RUN_DB_TESTS"),
    reason="Set RUN_DB_TESTS=1 (and DATABASE_URL) to run Postgres tests",
)


@pytest.fixture(scope="module")
def pg_store() -> PostgresLedgerStore:
    settings = Settings()
    apply_schema(settings)
    return PostgresLedgerStore(settings)


def _phone() -> str:
    return "+91" + str(uuid.uuid4().int)[:10]


def test_waste_lifecycle_against_postgres(pg_store):
    service = EcoTrackService(pg_store, settings=pg_store.settings, notifier=RecordingNotifier())
    admin = Actor(id="admin-live", role=Role.ADMIN)
    citizen = service.register_profile(f"live_{uuid.uuid4().hex[:8]}")
    agent = service.register_agent(_phone())
    report_id = service.submit_report("waste", citizen.id, waste_payload())

    task = service.request_transition(report_id, "in-progress", admin).task

    service.agent_update_task(task.id, "in_progress", task.agent_id)
    service.agent_update_task(task.id, "completed", task.agent_id)
    service.request_transition(report_id, "completed", admin)

    assert pg_store.get_report(report_id).coins_earned == 20
    assert pg_store.get_task(task.id).status == TaskStatus.COMPLETED
    profile = pg_store.get_profile(citizen.id)
    assert profile.eco_coins == 20
    assert profile.total_reports == 1
    service.set_agent_active(agent.id, False, admin)


def test_stale_version_conflicts(pg_store):
    service = EcoTrackService(pg_store, settings=pg_store.settings, notifier=RecordingNotifier())
    citizen = service.register_profile(f"live_{uuid.uuid4().hex[:8]}")
    report_id = service.submit_report("waste", citizen.id, waste_payload())

    pg_store.compare_and_swap_status(report_id, 0, "rejected")
    with pytest.raises(Conflict):
        pg_store.compare_and_swap_status(report_id, 0, "in-progress")


def test_reward_ledgers_are_idempotent(pg_store):
    service = EcoTrackService(pg_store, settings=pg_store.settings, notifier=RecordingNotifier())
    citizen = service.register_profile(f"live_{uuid.uuid4().hex[:8]}")
    report_id = service.submit_report("waste", citizen.id, waste_payload(category="hazardous"))

    assert pg_store.apply_reward_once(report_id, 25) is True
    assert pg_store.apply_reward_once(report_id, 25) is False
    assert report_id in pg_store.list_unsettled_rewards()
    assert pg_store.credit_profile(citizen.id, report_id, 25) is True
    assert pg_store.credit_profile(citizen.id, report_id, 25) is False
    assert report_id not in pg_store.list_unsettled_rewards()


def test_reward_pending_survives_until_coins_applied(pg_store):
    service = EcoTrackService(pg_store, settings=pg_store.settings, notifier=RecordingNotifier())
    citizen = service.register_profile(f"live_{uuid.uuid4().hex[:8]}")
    report_id = service.submit_report("waste", citizen.id, waste_payload())

    pg_store.compare_and_swap_status(report_id, 0, "completed", reward_pending=True)
    assert pg_store.get_report(report_id).reward_pending is True
    assert report_id in pg_store.list_unsettled_rewards()

    assert pg_store.apply_reward_once(report_id, 20) is True
    assert pg_store.get_report(report_id).reward_pending is False
