"""Ledger store protocol shared by the memory and Postgres backends."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol

from ecotrack.models import (
    CollectionTask,
    PickupAgent,
    Profile,
    Report,
    ReportKind,
    TaskStatus,
)


class LedgerStore(Protocol):
    """Durable record storage with optimistic concurrency.

    Status changes on reports and tasks only go through the compare-and-swap
    methods; a stale `expected_version` raises Conflict instead of overwriting.
    """

    # Profiles
    def insert_profile(self, profile: Profile) -> Profile: ...

    def get_profile(self, profile_id: str) -> Profile: ...

    def list_profiles(self) -> list[Profile]: ...

    def delete_profile(self, profile_id: str) -> None: ...

    def credit_profile(self, profile_id: str, report_id: str, coins: int) -> bool:
        """Add coins and one report to the profile, once per report id."""

    # Reports
    def insert_report(self, report: Report) -> Report: ...

    def get_report(self, report_id: str) -> Report: ...

    def list_reports(
        self,
        kind: Optional[ReportKind] = None,
        statuses: Optional[Iterable[str]] = None,
        owner_id: Optional[str] = None,
    ) -> list[Report]: ...

    def delete_report(self, report_id: str) -> None: ...

    def compare_and_swap_status(
        self,
        report_id: str,
        expected_version: int,
        new_status: str,
        note: Optional[str] = None,
        reward_pending: bool = False,
    ) -> Report:
        """Conditional status write; `reward_pending` marks a committed reward edge."""

    def apply_reward_once(self, report_id: str, amount: int) -> bool:
        """Set coins_earned from 0 to `amount` and clear reward_pending; False if already set."""

    def list_unsettled_rewards(self) -> list[str]:
        """Report ids with a pending reward edge or an owner credit still missing."""

    # Agents
    def insert_agent(self, agent: PickupAgent) -> PickupAgent: ...

    def get_agent(self, agent_id: str) -> PickupAgent: ...

    def get_agent_by_phone(self, phone_number: str) -> Optional[PickupAgent]: ...

    def list_active_agents(self) -> list[PickupAgent]: ...

    def set_agent_active(self, agent_id: str, is_active: bool) -> PickupAgent: ...

    def touch_agent_assignment(self, agent_id: str, at: datetime) -> None: ...

    def credit_agent_collection(self, agent_id: str, task_id: str, points: int) -> bool:
        """Count one completed collection for the agent, once per task id."""

    # Tasks
    def insert_task(self, task: CollectionTask) -> CollectionTask: ...

    def get_task(self, task_id: str) -> CollectionTask: ...

    def get_active_task(self, report_id: str) -> Optional[CollectionTask]: ...

    def list_tasks(
        self,
        agent_id: Optional[str] = None,
        report_id: Optional[str] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> list[CollectionTask]: ...

    def compare_and_swap_task_status(
        self,
        task_id: str,
        expected_version: int,
        new_status: TaskStatus,
        at: datetime,
        notes: Optional[str] = None,
    ) -> CollectionTask: ...

    # Dispatch queue
    def enqueue_dispatch(self, report_id: str) -> None: ...

    def dequeue_dispatch(self, report_id: str) -> None: ...

    def list_dispatch_queue(self) -> list[str]: ...
