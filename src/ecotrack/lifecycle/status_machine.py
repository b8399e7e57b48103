"""Legal transition graphs for waste and dirty-area reports.

Both graphs are plain edge tables. Nothing in this module touches storage;
callers supply the current report, the requested target and the caller's
identity, and get back the matching edge or an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Type, Union

from ecotrack.errors import Forbidden, InvalidTransition
from ecotrack.models import (
    Actor,
    DirtyAreaStatus,
    ReportKind,
    Role,
    WasteStatus,
)


AnyStatus = Union[WasteStatus, DirtyAreaStatus]

STAFF = frozenset({Role.ADMIN, Role.SYSTEM})
ADMIN_ONLY = frozenset({Role.ADMIN})
AGENT_ONLY = frozenset({Role.AGENT})


@dataclass(frozen=True)
class Edge:
    """One declared transition and the rules attached to it."""

    source: AnyStatus
    target: AnyStatus
    roles: frozenset[Role]
    requires_task_owner: bool = False
    triggers_reward: bool = False
    actionable: bool = False
    # Admin shortcut that bypasses the agent; any open task gets cancelled.
    force: bool = False

    @property
    def cancels_task(self) -> bool:
        return self.force or self.target.value == "rejected"


def _reject_edges(statuses: Iterable[AnyStatus], rejected: AnyStatus) -> list[Edge]:
    return [Edge(status, rejected, ADMIN_ONLY) for status in statuses]


WASTE_EDGES: tuple[Edge, ...] = (
    Edge(WasteStatus.PENDING, WasteStatus.IN_PROGRESS, STAFF, actionable=True),
    Edge(WasteStatus.IN_PROGRESS, WasteStatus.COLLECTED, AGENT_ONLY, requires_task_owner=True),
    Edge(WasteStatus.COLLECTED, WasteStatus.COMPLETED, STAFF, triggers_reward=True),
    Edge(WasteStatus.IN_PROGRESS, WasteStatus.COMPLETED, ADMIN_ONLY, force=True),
    *_reject_edges(
        (WasteStatus.PENDING, WasteStatus.IN_PROGRESS, WasteStatus.COLLECTED),
        WasteStatus.REJECTED,
    ),
)

DIRTY_AREA_EDGES: tuple[Edge, ...] = (
    Edge(DirtyAreaStatus.PENDING, DirtyAreaStatus.REPORTED, STAFF),
    Edge(DirtyAreaStatus.REPORTED, DirtyAreaStatus.IN_PROGRESS, STAFF, actionable=True),
    Edge(
        DirtyAreaStatus.IN_PROGRESS,
        DirtyAreaStatus.WAITING,
        AGENT_ONLY,
        requires_task_owner=True,
    ),
    Edge(DirtyAreaStatus.WAITING, DirtyAreaStatus.CLEANED, ADMIN_ONLY),
    Edge(DirtyAreaStatus.CLEANED, DirtyAreaStatus.COMPLETED, STAFF, triggers_reward=True),
    Edge(DirtyAreaStatus.IN_PROGRESS, DirtyAreaStatus.COMPLETED, ADMIN_ONLY, force=True),
    *_reject_edges(
        (
            DirtyAreaStatus.PENDING,
            DirtyAreaStatus.REPORTED,
            DirtyAreaStatus.IN_PROGRESS,
            DirtyAreaStatus.WAITING,
            DirtyAreaStatus.CLEANED,
        ),
        DirtyAreaStatus.REJECTED,
    ),
)

_EDGES: dict[ReportKind, dict[tuple[str, str], Edge]] = {
    ReportKind.WASTE: {(e.source.value, e.target.value): e for e in WASTE_EDGES},
    ReportKind.DIRTY_AREA: {(e.source.value, e.target.value): e for e in DIRTY_AREA_EDGES},
}

_STATUS_ENUMS: dict[ReportKind, Type[Enum]] = {
    ReportKind.WASTE: WasteStatus,
    ReportKind.DIRTY_AREA: DirtyAreaStatus,
}

# Status a report sits in while a collection task should exist.
ACTIONABLE_STATUS: dict[ReportKind, AnyStatus] = {
    ReportKind.WASTE: WasteStatus.IN_PROGRESS,
    ReportKind.DIRTY_AREA: DirtyAreaStatus.IN_PROGRESS,
}

# Step taken on the report when the agent completes its task.
AGENT_COMPLETION_STATUS: dict[ReportKind, AnyStatus] = {
    ReportKind.WASTE: WasteStatus.COLLECTED,
    ReportKind.DIRTY_AREA: DirtyAreaStatus.WAITING,
}


def status_enum_for(kind: ReportKind) -> Type[Enum]:
    """Return the status enumeration for a report kind."""
    return _STATUS_ENUMS[ReportKind(kind)]


def parse_status(kind: ReportKind, value: Union[str, Enum]) -> AnyStatus:
    """Coerce a raw status into the kind's enum or raise InvalidTransition."""
    raw = value.value if isinstance(value, Enum) else value
    enum_cls = status_enum_for(kind)
    try:
        return enum_cls(raw)  # type: ignore[return-value]
    except ValueError as exc:
        raise InvalidTransition(
            f"status {raw!r} is not defined for {ReportKind(kind).value} reports"
        ) from exc


def edges_for(kind: ReportKind) -> tuple[Edge, ...]:
    return tuple(_EDGES[ReportKind(kind)].values())


def find_edge(kind: ReportKind, source: str, target: str) -> Optional[Edge]:
    return _EDGES[ReportKind(kind)].get((source, target))


def allowed_targets(kind: ReportKind, source: str, role: Optional[Role] = None) -> list[str]:
    """List reachable statuses from `source`, optionally filtered by role."""
    return [
        edge.target.value
        for edge in edges_for(kind)
        if edge.source.value == source and (role is None or role in edge.roles)
    ]


def validate_transition(
    kind: ReportKind,
    current: str,
    target: Union[str, Enum],
    actor: Actor,
    owns_active_task: bool = False,
) -> Edge:
    """Check a requested transition and return its edge.

    Raises InvalidTransition when the pair is not a declared edge and
    Forbidden when the actor may not take it.
    """
    target_status = parse_status(kind, target)
    edge = find_edge(kind, current, target_status.value)
    if edge is None:
        raise InvalidTransition(
            f"{ReportKind(kind).value} report cannot move {current} -> {target_status.value}"
        )

    if actor.role not in edge.roles:
        raise Forbidden(
            f"role {actor.role.value} may not move {current} -> {target_status.value}"
        )

    if edge.requires_task_owner and not owns_active_task:
        raise Forbidden(f"agent {actor.id} does not own an active task for this report")

    return edge
