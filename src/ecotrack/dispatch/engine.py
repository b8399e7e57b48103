"""Collection task dispatch, agent task updates and cascades."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ecotrack.collaborators.notifier import TASK_ASSIGNED, Notifier, NullNotifier, notify_safely
from ecotrack.config import Settings
from ecotrack.errors import Conflict, Forbidden, InvalidTransition, NoAgentAvailable, NotFound
from ecotrack.lifecycle.status_machine import (
    ACTIONABLE_STATUS,
    AGENT_COMPLETION_STATUS,
    Edge,
)
from ecotrack.lifecycle.transitions import TransitionCommitter
from ecotrack.models import (
    ACTIVE_TASK_STATUSES,
    Actor,
    CollectionTask,
    PickupAgent,
    Report,
    Role,
    TaskStatus,
    TransitionResult,
)
from ecotrack.store.base import LedgerStore
from ecotrack.utils.logging import get_logger
from ecotrack.utils.time import EPOCH, utc_now


logger = get_logger(__name__)

# Task edges an agent may take on its own task.
AGENT_TASK_EDGES: frozenset[tuple[TaskStatus, TaskStatus]] = frozenset(
    {
        (TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    }
)

CANCEL_ATTEMPTS = 3


@dataclass
class SweepResult:
    dispatched: int = 0
    still_queued: int = 0
    dropped: int = 0
    repaired: int = 0
    closed: int = 0
    withdrawn: int = 0


class DispatchEngine:
    """Assign pickup agents to actionable reports and keep tasks in step with reports."""

    def __init__(
        self,
        store: LedgerStore,
        committer: Optional[TransitionCommitter] = None,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.store = store
        self.committer = committer or TransitionCommitter(store)
        self.settings = settings or Settings()
        self.notifier = notifier or NullNotifier()

    # Selection and assignment

    def select_agent(self) -> PickupAgent:
        """Pick the least-recently-assigned active agent."""
        agents = self.store.list_active_agents()
        if not agents:
            raise NoAgentAvailable("no active pickup agent")
        return min(
            agents,
            key=lambda a: (a.last_assigned_at or EPOCH, a.created_at, a.id),
        )

    def advance(
        self,
        report: Report,
        edge: Edge,
        actor: Actor,
        note: Optional[str] = None,
    ) -> TransitionResult:
        """Move a report into its actionable status and assign a task.

        The agent is chosen before the commit; with nobody available the report
        stays where it is and is queued for the next sweep.
        """
        try:
            agent = self.select_agent()
        except NoAgentAvailable:
            self.store.enqueue_dispatch(report.id)
            logger.warning("dispatch.queued report_id=%s", report.id)
            raise

        result = self.committer.commit(report, edge, actor, note=note)
        try:
            result.task = self.dispatch(result.report, agent)
        except Exception:
            # The commit stands; the sweep recreates the missing task.
            logger.exception("dispatch.assign_failed report_id=%s", report.id)
            return result
        self.store.dequeue_dispatch(report.id)
        return result

    def dispatch(self, report: Report, agent: PickupAgent) -> CollectionTask:
        """Create the report's task unless one is already active."""
        existing = self.store.get_active_task(report.id)
        if existing is not None:
            logger.info(
                "dispatch.already_assigned report_id=%s task_id=%s", report.id, existing.id
            )
            return existing

        now = utc_now()
        task = CollectionTask(
            agent_id=agent.id,
            report_id=report.id,
            report_kind=report.kind,
            assigned_at=now,
        )
        try:
            task = self.store.insert_task(task)
        except Conflict:
            existing = self.store.get_active_task(report.id)
            if existing is None:
                raise
            return existing

        self.store.touch_agent_assignment(agent.id, now)
        logger.info(
            "dispatch.assigned report_id=%s agent_id=%s task_id=%s",
            report.id,
            agent.id,
            task.id,
        )
        notify_safely(
            self.notifier,
            TASK_ASSIGNED,
            {"task_id": task.id, "agent_id": agent.id, "report_id": report.id},
            idempotency_key=task.id,
        )
        return task

    # Agent self-service

    def agent_update_task(
        self,
        task_id: str,
        target: Union[str, TaskStatus],
        agent_id: str,
    ) -> CollectionTask:
        task = self.store.get_task(task_id)
        if task.agent_id != agent_id:
            raise Forbidden(f"task {task_id} belongs to another agent")

        try:
            target_status = TaskStatus(target)
        except ValueError as exc:
            raise InvalidTransition(f"unknown task status {target!r}") from exc

        if (task.status, target_status) not in AGENT_TASK_EDGES:
            raise InvalidTransition(
                f"task {task_id} cannot move {task.status.value} -> {target_status.value}"
            )

        report = self.store.get_report(task.report_id)
        status = report.status_value()
        if (
            target_status == TaskStatus.COMPLETED
            and status == AGENT_COMPLETION_STATUS[report.kind].value
        ):
            # An earlier attempt moved the report but did not close the task.
            return self._complete_or_conflict(report.id, task_id, agent_id)

        if status != ACTIONABLE_STATUS[report.kind].value:
            self.cancel_for_report(report.id, reason=f"report is {report.status_value()}")
            raise InvalidTransition(
                f"report {report.id} is {report.status_value()}; task {task_id} was withdrawn"
            )

        if target_status == TaskStatus.IN_PROGRESS:
            started = self.store.compare_and_swap_task_status(
                task.id, task.version, TaskStatus.IN_PROGRESS, utc_now()
            )
            logger.info("dispatch.task_started task_id=%s agent_id=%s", task.id, agent_id)
            return started

        agent = Actor(id=agent_id, role=Role.AGENT)
        report, edge = self.committer.prepare(
            report.id, AGENT_COMPLETION_STATUS[report.kind], agent
        )
        self.committer.commit(report, edge, agent)
        return self._complete_or_conflict(report.id, task_id, agent_id)

    def _complete_or_conflict(self, report_id: str, task_id: str, agent_id: str) -> CollectionTask:
        completed = self.complete_for_report(report_id, agent_id)
        if completed is None:
            raise Conflict(f"task {task_id} changed while completing")
        return completed

    # Cascades

    def complete_for_report(self, report_id: str, agent_id: str) -> Optional[CollectionTask]:
        """Close the agent's active task once the report has moved on."""
        task = self.store.get_active_task(report_id)
        if task is None:
            return None
        if task.agent_id != agent_id:
            logger.warning(
                "dispatch.complete_skipped report_id=%s task_id=%s owner=%s caller=%s",
                report_id,
                task.id,
                task.agent_id,
                agent_id,
            )
            return None

        completed = self.store.compare_and_swap_task_status(
            task.id, task.version, TaskStatus.COMPLETED, utc_now()
        )
        self.store.credit_agent_collection(
            agent_id, task.id, self.settings.agent_points_per_collection
        )
        logger.info(
            "dispatch.task_completed report_id=%s task_id=%s agent_id=%s",
            report_id,
            task.id,
            agent_id,
        )
        return completed

    def cancel_for_report(self, report_id: str, reason: str) -> Optional[CollectionTask]:
        """Cancel the report's active task, if any. Never touches the report."""
        for _ in range(CANCEL_ATTEMPTS):
            task = self.store.get_active_task(report_id)
            if task is None:
                return None
            try:
                cancelled = self.store.compare_and_swap_task_status(
                    task.id, task.version, TaskStatus.CANCELLED, utc_now(), notes=reason
                )
            except Conflict:
                continue
            logger.info(
                "dispatch.task_cancelled report_id=%s task_id=%s reason=%s",
                report_id,
                task.id,
                reason,
            )
            return cancelled
        raise Conflict(f"could not cancel task for report {report_id}")

    # Recovery

    def sweep(self) -> SweepResult:
        """Retry queued dispatches and bring tasks back in line with their reports."""
        result = SweepResult()
        system = Actor.system()

        for report_id in self.store.list_dispatch_queue():
            try:
                report = self.store.get_report(report_id)
                target = ACTIONABLE_STATUS[report.kind]
                report, edge = self.committer.prepare(report_id, target, system)
            except (NotFound, InvalidTransition, Forbidden) as exc:
                # Report was deleted or moved on by someone else.
                self.store.dequeue_dispatch(report_id)
                result.dropped += 1
                logger.info("dispatch.sweep.dropped report_id=%s reason=%s", report_id, exc)
                continue

            try:
                self.advance(report, edge, system, note="dispatched by sweep")
            except NoAgentAvailable:
                result.still_queued += 1
                continue
            except Conflict:
                result.still_queued += 1
                logger.info("dispatch.sweep.conflict report_id=%s", report_id)
                continue
            result.dispatched += 1

        for kind, status in ACTIONABLE_STATUS.items():
            for report in self.store.list_reports(kind=kind, statuses=[status.value]):
                if self.store.get_active_task(report.id) is not None:
                    continue
                try:
                    agent = self.select_agent()
                except NoAgentAvailable:
                    logger.warning("dispatch.sweep.repair_deferred report_id=%s", report.id)
                    continue
                self.dispatch(report, agent)
                result.repaired += 1

        for kind, status in AGENT_COMPLETION_STATUS.items():
            for report in self.store.list_reports(kind=kind, statuses=[status.value]):
                task = self.store.get_active_task(report.id)
                if task is not None and self.complete_for_report(report.id, task.agent_id):
                    result.closed += 1

        result.withdrawn = self._withdraw_orphaned_tasks()

        logger.info(
            "dispatch.sweep.complete dispatched=%s still_queued=%s dropped=%s repaired=%s "
            "closed=%s withdrawn=%s",
            result.dispatched,
            result.still_queued,
            result.dropped,
            result.repaired,
            result.closed,
            result.withdrawn,
        )
        return result

    def _withdraw_orphaned_tasks(self) -> int:
        """Cancel active tasks whose report is gone or no longer needs a pickup."""
        withdrawn = 0
        for task in self.store.list_tasks(statuses=ACTIVE_TASK_STATUSES):
            try:
                report = self.store.get_report(task.report_id)
            except NotFound:
                reason = "report deleted"
            else:
                status = report.status_value()
                if status in (
                    ACTIONABLE_STATUS[report.kind].value,
                    AGENT_COMPLETION_STATUS[report.kind].value,
                ):
                    continue
                reason = f"report is {status}"

            try:
                cancelled = self.cancel_for_report(task.report_id, reason=reason)
            except Conflict:
                logger.info("dispatch.sweep.withdraw_conflict task_id=%s", task.id)
                continue
            if cancelled is not None:
                withdrawn += 1
        return withdrawn
