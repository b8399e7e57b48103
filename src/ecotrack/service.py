"""Inbound operations for citizens, admins and pickup agents."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from ecotrack.collaborators.image_storage import ImageStorage
from ecotrack.collaborators.notifier import Notifier, build_notifier
from ecotrack.config import Settings
from ecotrack.dispatch.engine import DispatchEngine, SweepResult
from ecotrack.errors import DownstreamUnavailable, Forbidden
from ecotrack.leaderboard import LeaderboardAggregator
from ecotrack.lifecycle.status_machine import Edge
from ecotrack.lifecycle.transitions import TransitionCommitter
from ecotrack.models import (
    ACTIVE_TASK_STATUSES,
    Actor,
    CollectionTask,
    DirtyAreaReport,
    DirtyAreaSubmission,
    LeaderboardEntry,
    PickupAgent,
    Profile,
    Report,
    ReportKind,
    Role,
    TransitionResult,
    WasteReport,
    WasteSubmission,
)
from ecotrack.rewards.engine import RewardEngine
from ecotrack.store.base import LedgerStore
from ecotrack.utils.logging import get_logger
from ecotrack.utils.text import normalize_phone_number


logger = get_logger(__name__)


@dataclass
class SweepSummary:
    dispatch: SweepResult
    rewards_settled: int


class EcoTrackService:
    """Report lifecycle facade.

    Every mutating call carries an explicit `Actor`; there is no session state.
    A committed transition is the unit of truth: dispatch, cancellation and
    reward cascades run after it and never undo it.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        image_storage: Optional[ImageStorage] = None,
        leaderboard: Optional[LeaderboardAggregator] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.notifier = notifier or build_notifier(self.settings)
        self.image_storage = image_storage or ImageStorage(self.settings)
        self.committer = TransitionCommitter(store)
        self.dispatcher = DispatchEngine(store, self.committer, self.settings, self.notifier)
        self.rewards = RewardEngine(store, self.settings, self.notifier)
        self.leaderboard = leaderboard or LeaderboardAggregator(store, self.settings)

    # Registration

    def register_profile(self, username: str, full_name: Optional[str] = None) -> Profile:
        profile = self.store.insert_profile(Profile(username=username, full_name=full_name))
        logger.info("profile.registered profile_id=%s", profile.id)
        return profile

    def register_agent(self, phone_number: str, full_name: Optional[str] = None) -> PickupAgent:
        normalized = normalize_phone_number(phone_number)
        if normalized is None:
            raise ValueError("phone number must be 10-15 digits, optionally prefixed with +")
        agent = self.store.insert_agent(PickupAgent(phone_number=normalized, full_name=full_name))
        logger.info("agent.registered agent_id=%s", agent.id)
        return agent

    def set_agent_active(self, agent_id: str, is_active: bool, actor: Actor) -> PickupAgent:
        if actor.role != Role.ADMIN and not (actor.role == Role.AGENT and actor.id == agent_id):
            raise Forbidden("only admins or the agent itself may change availability")
        agent = self.store.set_agent_active(agent_id, is_active)
        logger.info("agent.availability agent_id=%s active=%s", agent_id, is_active)
        return agent

    # Reports

    def submit_report(
        self,
        kind: Union[str, ReportKind],
        owner_id: str,
        payload: dict[str, Any],
    ) -> str:
        """Create a pending report for an existing citizen and return its id."""
        self.store.get_profile(owner_id)
        report_kind = ReportKind(kind)

        report: Report
        if report_kind == ReportKind.WASTE:
            submission = WasteSubmission.model_validate(payload)
            report = WasteReport(owner_id=owner_id, **submission.model_dump())
        else:
            dirty = DirtyAreaSubmission.model_validate(payload)
            report = DirtyAreaReport(owner_id=owner_id, **dirty.model_dump())

        if report.image_ref:
            report.image_url = self._resolve_image(report.image_ref)

        report = self.store.insert_report(report)
        logger.info(
            "report.submitted report_id=%s kind=%s owner_id=%s",
            report.id,
            report_kind.value,
            owner_id,
        )
        return report.id

    def get_report(self, report_id: str) -> Report:
        return self.store.get_report(report_id)

    def list_reports_by_owner(self, owner_id: str) -> list[Report]:
        return self.store.list_reports(owner_id=owner_id)

    def request_transition(
        self,
        report_id: str,
        target_status: Union[str, Enum],
        actor: Actor,
        note: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """Validate and commit one status change, then run its cascades."""
        report, edge = self.committer.prepare(report_id, target_status, actor, expected_version)

        if edge.actionable:
            result = self.dispatcher.advance(report, edge, actor, note=note)
        else:
            result = self.committer.commit(report, edge, actor, note=note)

        self._run_cascades(result, edge, actor)
        return result

    def delete_report(self, report_id: str, actor: Actor) -> None:
        self._require_admin(actor)
        self.store.get_report(report_id)
        self.dispatcher.cancel_for_report(report_id, reason="report deleted")
        self.store.delete_report(report_id)
        logger.info("report.deleted report_id=%s actor=%s", report_id, actor.id)

    def delete_profile(self, profile_id: str, actor: Actor) -> int:
        """Remove a citizen and every report they own. Returns reports removed."""
        self._require_admin(actor)
        self.store.get_profile(profile_id)
        removed = 0
        for report in self.store.list_reports(owner_id=profile_id):
            self.delete_report(report.id, actor)
            removed += 1
        self.store.delete_profile(profile_id)
        logger.info("profile.deleted profile_id=%s reports_removed=%s", profile_id, removed)
        return removed

    # Agents

    def agent_update_task(
        self,
        task_id: str,
        target_status: str,
        agent_id: str,
    ) -> CollectionTask:
        return self.dispatcher.agent_update_task(task_id, target_status, agent_id)

    def list_agent_tasks(self, agent_id: str, active_only: bool = False) -> list[CollectionTask]:
        self.store.get_agent(agent_id)
        statuses = ACTIVE_TASK_STATUSES if active_only else None
        return self.store.list_tasks(agent_id=agent_id, statuses=statuses)

    # Leaderboard

    def get_leaderboard(self, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        return self.leaderboard.get(limit)

    # Recovery

    def run_sweeps(self) -> SweepSummary:
        dispatch_result = self.dispatcher.sweep()
        settled = self.rewards.settle_pending()
        return SweepSummary(dispatch=dispatch_result, rewards_settled=settled)

    # Internals

    def _run_cascades(self, result: TransitionResult, edge: Edge, actor: Actor) -> None:
        report_id = result.report.id
        if edge.cancels_task:
            self._cascade(
                "cancel_task",
                report_id,
                lambda: self.dispatcher.cancel_for_report(
                    report_id, reason=f"report moved to {edge.target.value} by {actor.id}"
                ),
            )
        if edge.requires_task_owner:
            self._cascade(
                "complete_task",
                report_id,
                lambda: self.dispatcher.complete_for_report(report_id, actor.id),
            )
        if edge.triggers_reward:
            self._cascade("reward", report_id, lambda: self.rewards.on_transition(result))

    @staticmethod
    def _cascade(name: str, report_id: str, step: Callable[[], object]) -> None:
        try:
            step()
        except Exception:
            # Left for the sweeps; the transition itself already committed.
            logger.exception("cascade.failed step=%s report_id=%s", name, report_id)

    def _resolve_image(self, image_ref: str) -> Optional[str]:
        try:
            return self.image_storage.public_url(image_ref)
        except DownstreamUnavailable as exc:
            logger.warning("report.image_unresolved ref=%s error=%s", image_ref, exc)
            return None

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if actor.role != Role.ADMIN:
            raise Forbidden(f"role {actor.role.value} may not perform admin actions")

