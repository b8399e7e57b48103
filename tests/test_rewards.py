from ecotrack.config import Settings
from ecotrack.collaborators.notifier import REWARD_GRANTED
from ecotrack.models import (
    DirtyAreaReport,
    DirtyAreaStatus,
    Profile,
    TransitionResult,
    WasteCategory,
    WasteReport,
    WasteStatus,
)
from ecotrack.rewards.engine import RewardEngine
from ecotrack.store.memory import MemoryLedgerStore

from conftest import RecordingNotifier


class FlakyCreditStore(MemoryLedgerStore):
    """Fails the first `failures` profile credits."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.credit_calls = 0

    def credit_profile(self, profile_id: str, report_id: str, coins: int) -> bool:
        self.credit_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("profile update timed out")
        return super().credit_profile(profile_id, report_id, coins)


def _completed_waste(store, category=WasteCategory.E_WASTE) -> tuple[Profile, WasteReport]:
    profile = store.insert_profile(Profile(username="rita"))
    report = store.insert_report(
        WasteReport(
            owner_id=profile.id,
            title="Batteries",
            category=category,
            status=WasteStatus.COMPLETED,
        )
    )
    return profile, report


def _result(report, triggers_reward=True) -> TransitionResult:
    return TransitionResult(
        report=report, previous_status="collected", triggers_reward=triggers_reward
    )


def test_policy_amounts():
    owner = "p1"
    assert WasteReport(owner_id=owner, title="t", category="dry-waste").reward_amount() == 15
    assert WasteReport(owner_id=owner, title="t", category="e-waste").reward_amount() == 20
    assert WasteReport(owner_id=owner, title="t", category="hazardous").reward_amount() == 25
    assert WasteReport(owner_id=owner, title="t", category="reusable").reward_amount() == 15
    assert DirtyAreaReport(owner_id=owner, title="t").reward_amount() == 15


def test_reward_applies_once_and_credits_profile():
    store = MemoryLedgerStore()
    notifier = RecordingNotifier()
    engine = RewardEngine(store, Settings(), notifier)
    profile, report = _completed_waste(store)

    assert engine.on_transition(_result(report)) is True
    assert engine.on_transition(_result(report)) is False

    assert store.get_report(report.id).coins_earned == 20
    credited = store.get_profile(profile.id)
    assert credited.eco_coins == 20
    assert credited.total_reports == 1
    assert len(notifier.events(REWARD_GRANTED)) == 1


def test_non_reward_transition_is_ignored():
    store = MemoryLedgerStore()
    engine = RewardEngine(store, Settings())
    profile, report = _completed_waste(store)
    assert engine.on_transition(_result(report, triggers_reward=False)) is False
    assert store.get_report(report.id).coins_earned == 0
    assert store.get_profile(profile.id).eco_coins == 0


def test_credit_is_retried_without_double_counting():
    store = FlakyCreditStore(failures=1)
    engine = RewardEngine(store, Settings(reward_max_retries=3))
    profile, report = _completed_waste(store, WasteCategory.HAZARDOUS)

    engine.on_transition(_result(report))

    assert store.credit_calls == 2
    credited = store.get_profile(profile.id)
    assert credited.eco_coins == 25
    assert credited.total_reports == 1


def test_exhausted_credit_is_settled_later():
    store = FlakyCreditStore(failures=5)
    engine = RewardEngine(store, Settings(reward_max_retries=2))
    profile, report = _completed_waste(store)

    assert engine.on_transition(_result(report)) is True
    assert store.get_profile(profile.id).total_reports == 0
    assert store.list_unsettled_rewards() == [report.id]

    store.failures = 0
    assert engine.settle_pending() == 1
    assert engine.settle_pending() == 0
    credited = store.get_profile(profile.id)
    assert credited.eco_coins == 20
    assert credited.total_reports == 1


def test_replayed_reward_after_partial_failure_credits_once():
    store = FlakyCreditStore(failures=2)
    engine = RewardEngine(store, Settings(reward_max_retries=2))
    profile, report = _completed_waste(store)

    engine.on_transition(_result(report))
    # Duplicate delivery of the same commit: coins stay, the credit lands once.
    assert engine.on_transition(_result(report)) is False
    assert engine.on_transition(_result(report)) is False

    credited = store.get_profile(profile.id)
    assert credited.eco_coins == 20
    assert credited.total_reports == 1
    assert store.get_report(report.id).coins_earned == 20


def test_level_follows_total_reports():
    store = MemoryLedgerStore()
    engine = RewardEngine(store, Settings())
    profile = store.insert_profile(Profile(username="ten"))
    for index in range(10):
        report = store.insert_report(
            DirtyAreaReport(
                owner_id=profile.id,
                title=f"Area {index}",
                status=DirtyAreaStatus.COMPLETED,
            )
        )
        engine.on_transition(_result(report))

    credited = store.get_profile(profile.id)
    assert credited.total_reports == 10
    assert credited.level == 2
    assert credited.eco_coins == 150


def test_notification_failure_does_not_block_reward():
    store = MemoryLedgerStore()
    engine = RewardEngine(store, Settings(), RecordingNotifier(fail=True))
    profile, report = _completed_waste(store)
    assert engine.on_transition(_result(report)) is True
    assert store.get_profile(profile.id).eco_coins == 20
