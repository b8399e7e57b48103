"""Coin grants and level recompute on the reward edge."""

from __future__ import annotations

from typing import Optional

from ecotrack.collaborators.notifier import REWARD_GRANTED, Notifier, NullNotifier, notify_safely
from ecotrack.config import Settings
from ecotrack.models import Report, TransitionResult
from ecotrack.store.base import LedgerStore
from ecotrack.utils.logging import get_logger


logger = get_logger(__name__)


class RewardEngine:
    """Apply coins to a report and credit its owner, idempotently per report id."""

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.notifier = notifier or NullNotifier()

    def on_transition(self, result: TransitionResult) -> bool:
        """React to a committed transition. Returns True if coins were newly applied."""
        if not result.triggers_reward:
            return False
        return self.grant(result.report)

    def grant(self, report: Report) -> bool:
        applied, _ = self._grant(report)
        return applied

    def _grant(self, report: Report) -> tuple[bool, bool]:
        amount = report.reward_amount()
        applied = self.store.apply_reward_once(report.id, amount)
        if applied:
            logger.info(
                "rewards.applied report_id=%s kind=%s amount=%s",
                report.id,
                report.kind.value,
                amount,
            )
        else:
            logger.info("rewards.already_applied report_id=%s", report.id)

        # Runs even when coins were already set: a previous attempt may have
        # applied coins and then failed to credit the owner.
        current = self.store.get_report(report.id)
        credited = self._credit_with_retry(current)

        if applied:
            notify_safely(
                self.notifier,
                REWARD_GRANTED,
                {
                    "report_id": current.id,
                    "profile_id": current.owner_id,
                    "coins": current.coins_earned,
                    "credited": credited,
                },
                idempotency_key=current.id,
            )
        return applied, credited

    def settle_pending(self) -> int:
        """Finish rewards left half-done: coins never applied or owner never credited."""
        settled = 0
        for report_id in self.store.list_unsettled_rewards():
            try:
                report = self.store.get_report(report_id)
                _, credited = self._grant(report)
            except Exception:
                logger.exception("rewards.settle_failed report_id=%s", report_id)
                continue
            if credited:
                settled += 1
        if settled:
            logger.info("rewards.settled count=%s", settled)
        return settled

    def _credit_with_retry(self, report: Report) -> bool:
        attempts = max(1, self.settings.reward_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                credited = self.store.credit_profile(
                    report.owner_id, report.id, report.coins_earned
                )
            except Exception:
                if attempt < attempts:
                    logger.warning(
                        "rewards.credit_retry report_id=%s attempt=%s", report.id, attempt
                    )
                    continue
                logger.exception(
                    "rewards.credit_failed report_id=%s profile_id=%s",
                    report.id,
                    report.owner_id,
                )
                return False
            if credited:
                profile = self.store.get_profile(report.owner_id)
                logger.info(
                    "rewards.credited report_id=%s profile_id=%s coins=%s total_reports=%s level=%s",
                    report.id,
                    profile.id,
                    report.coins_earned,
                    profile.total_reports,
                    profile.level,
                )
            return True
        return False
