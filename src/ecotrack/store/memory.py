"""In-process ledger store used for tests and local runs."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Iterable, Optional, TypeVar

from pydantic import BaseModel

from ecotrack.errors import Conflict, NotFound
from ecotrack.models import (
    ACTIVE_TASK_STATUSES,
    CollectionTask,
    PickupAgent,
    Profile,
    Report,
    ReportKind,
    TaskStatus,
    level_for,
)
from ecotrack.lifecycle.status_machine import parse_status
from ecotrack.utils.time import utc_now


T = TypeVar("T", bound=BaseModel)


def _copy(record: T) -> T:
    return record.model_copy(deep=True)


class MemoryLedgerStore:
    """Dictionary-backed store; one re-entrant lock serializes every write."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._profiles: dict[str, Profile] = {}
        self._reports: dict[str, Report] = {}
        self._agents: dict[str, PickupAgent] = {}
        self._tasks: dict[str, CollectionTask] = {}
        self._credited_reports: set[str] = set()
        self._credited_tasks: set[str] = set()
        self._dispatch_queue: dict[str, datetime] = {}

    # Profiles

    def insert_profile(self, profile: Profile) -> Profile:
        with self._lock:
            if profile.id in self._profiles:
                raise Conflict(f"profile {profile.id} already exists")
            self._profiles[profile.id] = _copy(profile)
            return _copy(profile)

    def get_profile(self, profile_id: str) -> Profile:
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                raise NotFound(f"profile {profile_id} not found")
            return _copy(profile)

    def list_profiles(self) -> list[Profile]:
        with self._lock:
            return [_copy(p) for p in self._profiles.values()]

    def delete_profile(self, profile_id: str) -> None:
        with self._lock:
            if self._profiles.pop(profile_id, None) is None:
                raise NotFound(f"profile {profile_id} not found")

    def credit_profile(self, profile_id: str, report_id: str, coins: int) -> bool:
        with self._lock:
            profile = self._profiles.get(profile_id)
            if profile is None:
                raise NotFound(f"profile {profile_id} not found")
            if report_id in self._credited_reports:
                return False
            total_reports = profile.total_reports + 1
            self._profiles[profile_id] = profile.model_copy(
                update={
                    "eco_coins": profile.eco_coins + coins,
                    "total_reports": total_reports,
                    "level": max(profile.level, level_for(total_reports)),
                    "version": profile.version + 1,
                    "updated_at": utc_now(),
                }
            )
            self._credited_reports.add(report_id)
            return True

    # Reports

    def insert_report(self, report: Report) -> Report:
        with self._lock:
            if report.id in self._reports:
                raise Conflict(f"report {report.id} already exists")
            self._reports[report.id] = _copy(report)
            return _copy(report)

    def get_report(self, report_id: str) -> Report:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound(f"report {report_id} not found")
            return _copy(report)

    def list_reports(
        self,
        kind: Optional[ReportKind] = None,
        statuses: Optional[Iterable[str]] = None,
        owner_id: Optional[str] = None,
    ) -> list[Report]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            reports = [
                _copy(r)
                for r in self._reports.values()
                if (kind is None or r.kind == kind)
                and (wanted is None or r.status_value() in wanted)
                and (owner_id is None or r.owner_id == owner_id)
            ]
        return sorted(reports, key=lambda r: (r.created_at, r.id))

    def delete_report(self, report_id: str) -> None:
        with self._lock:
            if self._reports.pop(report_id, None) is None:
                raise NotFound(f"report {report_id} not found")
            self._dispatch_queue.pop(report_id, None)
            # Tasks cascade with their report.
            for task_id in [t.id for t in self._tasks.values() if t.report_id == report_id]:
                del self._tasks[task_id]

    def compare_and_swap_status(
        self,
        report_id: str,
        expected_version: int,
        new_status: str,
        note: Optional[str] = None,
        reward_pending: bool = False,
    ) -> Report:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                raise NotFound(f"report {report_id} not found")
            if current.version != expected_version:
                raise Conflict(
                    f"report {report_id} is at version {current.version}, "
                    f"expected {expected_version}"
                )
            updated = current.model_copy(
                update={
                    "status": parse_status(current.kind, new_status),
                    "note": note if note is not None else current.note,
                    "reward_pending": current.reward_pending or reward_pending,
                    "version": current.version + 1,
                    "updated_at": utc_now(),
                }
            )
            self._reports[report_id] = updated
            return _copy(updated)

    def apply_reward_once(self, report_id: str, amount: int) -> bool:
        with self._lock:
            current = self._reports.get(report_id)
            if current is None:
                raise NotFound(f"report {report_id} not found")
            if current.coins_earned != 0:
                return False
            self._reports[report_id] = current.model_copy(
                update={
                    "coins_earned": amount,
                    "reward_pending": False,
                    "version": current.version + 1,
                    "updated_at": utc_now(),
                }
            )
            return True

    def list_unsettled_rewards(self) -> list[str]:
        with self._lock:
            return [
                r.id
                for r in sorted(self._reports.values(), key=lambda r: (r.updated_at, r.id))
                if (r.reward_pending and r.coins_earned == 0)
                or (r.coins_earned > 0 and r.id not in self._credited_reports)
            ]

    # Agents

    def insert_agent(self, agent: PickupAgent) -> PickupAgent:
        with self._lock:
            if any(a.phone_number == agent.phone_number for a in self._agents.values()):
                raise Conflict(f"phone number {agent.phone_number} is already registered")
            self._agents[agent.id] = _copy(agent)
            return _copy(agent)

    def get_agent(self, agent_id: str) -> PickupAgent:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise NotFound(f"agent {agent_id} not found")
            return _copy(agent)

    def get_agent_by_phone(self, phone_number: str) -> Optional[PickupAgent]:
        with self._lock:
            for agent in self._agents.values():
                if agent.phone_number == phone_number:
                    return _copy(agent)
        return None

    def list_active_agents(self) -> list[PickupAgent]:
        with self._lock:
            return [_copy(a) for a in self._agents.values() if a.is_active]

    def set_agent_active(self, agent_id: str, is_active: bool) -> PickupAgent:
        return self._update_agent(agent_id, is_active=is_active)

    def touch_agent_assignment(self, agent_id: str, at: datetime) -> None:
        self._update_agent(agent_id, last_assigned_at=at)

    def credit_agent_collection(self, agent_id: str, task_id: str, points: int) -> bool:
        with self._lock:
            if task_id in self._credited_tasks:
                return False
            agent = self.get_agent(agent_id)
            self._update_agent(
                agent_id,
                total_collections=agent.total_collections + 1,
                points_earned=agent.points_earned + points,
            )
            self._credited_tasks.add(task_id)
            return True

    def _update_agent(self, agent_id: str, **changes: object) -> PickupAgent:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                raise NotFound(f"agent {agent_id} not found")
            updated = agent.model_copy(
                update={**changes, "version": agent.version + 1, "updated_at": utc_now()}
            )
            self._agents[agent_id] = updated
            return _copy(updated)

    # Tasks

    def insert_task(self, task: CollectionTask) -> CollectionTask:
        with self._lock:
            if task.is_active() and self._active_task(task.report_id) is not None:
                raise Conflict(f"report {task.report_id} already has an active task")
            self._tasks[task.id] = _copy(task)
            return _copy(task)

    def get_task(self, task_id: str) -> CollectionTask:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise NotFound(f"task {task_id} not found")
            return _copy(task)

    def get_active_task(self, report_id: str) -> Optional[CollectionTask]:
        with self._lock:
            task = self._active_task(report_id)
            return _copy(task) if task is not None else None

    def list_tasks(
        self,
        agent_id: Optional[str] = None,
        report_id: Optional[str] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> list[CollectionTask]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            tasks = [
                _copy(t)
                for t in self._tasks.values()
                if (agent_id is None or t.agent_id == agent_id)
                and (report_id is None or t.report_id == report_id)
                and (wanted is None or t.status in wanted)
            ]
        return sorted(tasks, key=lambda t: (t.assigned_at, t.id))

    def compare_and_swap_task_status(
        self,
        task_id: str,
        expected_version: int,
        new_status: TaskStatus,
        at: datetime,
        notes: Optional[str] = None,
    ) -> CollectionTask:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise NotFound(f"task {task_id} not found")
            if current.version != expected_version:
                raise Conflict(
                    f"task {task_id} is at version {current.version}, "
                    f"expected {expected_version}"
                )
            changes: dict[str, object] = {
                "status": new_status,
                "version": current.version + 1,
            }
            if new_status == TaskStatus.IN_PROGRESS:
                changes["started_at"] = at
            elif new_status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED):
                changes["completed_at"] = at
            if notes is not None:
                changes["notes"] = notes
            updated = current.model_copy(update=changes)
            self._tasks[task_id] = updated
            return _copy(updated)

    def _active_task(self, report_id: str) -> Optional[CollectionTask]:
        for task in self._tasks.values():
            if task.report_id == report_id and task.status in ACTIVE_TASK_STATUSES:
                return task
        return None

    # Dispatch queue

    def enqueue_dispatch(self, report_id: str) -> None:
        with self._lock:
            self._dispatch_queue.setdefault(report_id, utc_now())

    def dequeue_dispatch(self, report_id: str) -> None:
        with self._lock:
            self._dispatch_queue.pop(report_id, None)

    def list_dispatch_queue(self) -> list[str]:
        with self._lock:
            ordered = sorted(
                self._dispatch_queue.items(), key=lambda item: (item[1], item[0])
            )
            return [report_id for report_id, _ in ordered]
