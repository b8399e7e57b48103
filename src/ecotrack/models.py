"""Core records for reports, profiles, agents and collection tasks."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ecotrack.utils.time import new_id, utc_now


class Role(str, Enum):
    """Who is issuing a request."""

    CITIZEN = "citizen"
    ADMIN = "admin"
    AGENT = "agent"
    SYSTEM = "system"


class ReportKind(str, Enum):
    WASTE = "waste"
    DIRTY_AREA = "dirty-area"


class WasteCategory(str, Enum):
    DRY_WASTE = "dry-waste"
    E_WASTE = "e-waste"
    REUSABLE = "reusable"
    HAZARDOUS = "hazardous"


class WasteStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COLLECTED = "collected"
    COMPLETED = "completed"
    REJECTED = "rejected"


class DirtyAreaStatus(str, Enum):
    PENDING = "pending"
    REPORTED = "reported"
    IN_PROGRESS = "in-progress"
    WAITING = "waiting"
    CLEANED = "cleaned"
    COMPLETED = "completed"
    REJECTED = "rejected"


class TaskStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_TASK_STATUSES = frozenset({TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS})
TERMINAL_STATUS_VALUES = frozenset({"completed", "rejected"})

# Coins granted on the reward edge, keyed by waste category.
WASTE_REWARDS: dict[WasteCategory, int] = {
    WasteCategory.DRY_WASTE: 15,
    WasteCategory.E_WASTE: 20,
    WasteCategory.HAZARDOUS: 25,
    WasteCategory.REUSABLE: 15,
}
DIRTY_AREA_REWARD = 15


class Actor(BaseModel):
    """Explicit caller identity passed to every mutating call."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", role=Role.SYSTEM)


class Profile(BaseModel):
    """Citizen profile with gamification totals."""

    id: str = Field(default_factory=new_id)
    username: str
    full_name: Optional[str] = None
    eco_coins: int = Field(default=0, ge=0)
    waste_collected: float = 0.0
    streak: int = 0
    level: int = 1
    total_reports: int = 0
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ReportBase(BaseModel):
    """Fields and behaviour shared by both report kinds."""

    id: str = Field(default_factory=new_id)
    owner_id: str
    title: str
    description: Optional[str] = None
    image_ref: Optional[str] = None
    image_url: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    location_address: Optional[str] = None
    coins_earned: int = Field(default=0, ge=0)
    # Set with the reward edge commit; cleared once coins are applied.
    reward_pending: bool = False
    note: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def status_value(self) -> str:
        return self.status.value  # type: ignore[attr-defined]

    def is_terminal(self) -> bool:
        return self.status_value() in TERMINAL_STATUS_VALUES


class WasteReport(ReportBase):
    """Single-item waste sighting."""

    kind: Literal[ReportKind.WASTE] = ReportKind.WASTE
    category: WasteCategory
    status: WasteStatus = WasteStatus.PENDING
    # Advisory only; the citizen-chosen category is authoritative.
    ai_detected_category: Optional[str] = None

    def reward_amount(self) -> int:
        return WASTE_REWARDS[self.category]


class DirtyAreaReport(ReportBase):
    """Polluted-area sighting."""

    kind: Literal[ReportKind.DIRTY_AREA] = ReportKind.DIRTY_AREA
    status: DirtyAreaStatus = DirtyAreaStatus.PENDING

    def reward_amount(self) -> int:
        return DIRTY_AREA_REWARD


Report = Annotated[Union[WasteReport, DirtyAreaReport], Field(discriminator="kind")]


class PickupAgent(BaseModel):
    """Field worker account, separate from citizen profiles."""

    id: str = Field(default_factory=new_id)
    phone_number: str
    full_name: Optional[str] = None
    is_active: bool = True
    total_collections: int = 0
    points_earned: int = 0
    last_assigned_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class CollectionTask(BaseModel):
    """Binding between one actionable report and one pickup agent."""

    id: str = Field(default_factory=new_id)
    agent_id: str
    report_id: str
    report_kind: ReportKind
    status: TaskStatus = TaskStatus.ASSIGNED
    assigned_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    version: int = 0

    def is_active(self) -> bool:
        return self.status in ACTIVE_TASK_STATUSES


class TransitionResult(BaseModel):
    """Outcome of a committed report transition."""

    report: Report
    previous_status: str
    triggers_reward: bool = False
    task: Optional[CollectionTask] = None

    @property
    def status(self) -> str:
        return self.report.status_value()


class WasteSubmission(BaseModel):
    """Citizen payload for a waste sighting."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    category: WasteCategory
    description: Optional[str] = None
    image_ref: Optional[str] = None
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    location_address: Optional[str] = None
    ai_detected_category: Optional[str] = None


class DirtyAreaSubmission(BaseModel):
    """Citizen payload for a dirty-area sighting."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    description: Optional[str] = None
    image_ref: Optional[str] = None
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    location_address: Optional[str] = None


class LeaderboardEntry(BaseModel):
    rank: int
    profile_id: str
    username: str
    eco_coins: int
    total_reports: int
    level: int


def level_for(total_reports: int) -> int:
    """Level derived from the cumulative report count."""
    return total_reports // 10 + 1
