"""Validate a requested report transition against fresh state and commit it."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from ecotrack.errors import Conflict
from ecotrack.lifecycle.status_machine import Edge, validate_transition
from ecotrack.models import Actor, Report, Role, TransitionResult
from ecotrack.store.base import LedgerStore
from ecotrack.utils.logging import get_logger
from ecotrack.utils.text import clean_note


logger = get_logger(__name__)


class TransitionCommitter:
    """Two-step transition: `prepare` reads and validates, `commit` swaps.

    The swap is conditional on the version read in `prepare`, so a racing
    writer between the two steps turns into Conflict rather than a lost update.
    """

    def __init__(self, store: LedgerStore) -> None:
        self.store = store

    def prepare(
        self,
        report_id: str,
        target: Union[str, Enum],
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> tuple[Report, Edge]:
        report = self.store.get_report(report_id)
        if expected_version is not None and expected_version != report.version:
            raise Conflict(
                f"report {report_id} changed: read version {expected_version}, "
                f"current {report.version}"
            )

        edge = validate_transition(
            report.kind,
            report.status_value(),
            target,
            actor,
            owns_active_task=self._owns_active_task(report_id, actor),
        )
        return report, edge

    def commit(
        self,
        report: Report,
        edge: Edge,
        actor: Actor,
        note: Optional[str] = None,
    ) -> TransitionResult:
        updated = self.store.compare_and_swap_status(
            report.id,
            report.version,
            edge.target.value,
            note=clean_note(note),
            reward_pending=edge.triggers_reward,
        )
        logger.info(
            "transition.committed report_id=%s kind=%s from=%s to=%s actor=%s role=%s version=%s",
            report.id,
            report.kind.value,
            edge.source.value,
            edge.target.value,
            actor.id,
            actor.role.value,
            updated.version,
        )
        return TransitionResult(
            report=updated,
            previous_status=edge.source.value,
            triggers_reward=edge.triggers_reward,
        )

    def _owns_active_task(self, report_id: str, actor: Actor) -> bool:
        if actor.role != Role.AGENT:
            return False
        task = self.store.get_active_task(report_id)
        return task is not None and task.agent_id == actor.id
