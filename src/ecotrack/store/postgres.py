"""Postgres ledger store.

Every method runs in its own transaction via `db_cursor`. Status changes are
conditional updates on `(id, version)`; zero affected rows means the caller
read a stale version (or the id is gone) and gets Conflict or NotFound.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from psycopg import Cursor, errors
from psycopg.rows import RowFactory, dict_row, tuple_row
from pydantic import TypeAdapter

from ecotrack.config import Settings
from ecotrack.db.client import db_cursor
from ecotrack.errors import Conflict, NotFound
from ecotrack.models import (
    CollectionTask,
    PickupAgent,
    Profile,
    Report,
    ReportKind,
    TaskStatus,
    WasteReport,
)
from ecotrack.utils.logging import get_logger


logger = get_logger(__name__)

_REPORT_ADAPTER: TypeAdapter[Report] = TypeAdapter(Report)

PROFILE_COLUMNS = (
    "id",
    "username",
    "full_name",
    "eco_coins",
    "waste_collected",
    "streak",
    "level",
    "total_reports",
    "version",
    "created_at",
    "updated_at",
)

REPORT_COLUMNS = (
    "id",
    "kind",
    "owner_id",
    "title",
    "description",
    "category",
    "ai_detected_category",
    "image_ref",
    "image_url",
    "location_lat",
    "location_lng",
    "location_address",
    "status",
    "coins_earned",
    "reward_pending",
    "note",
    "version",
    "created_at",
    "updated_at",
)

AGENT_COLUMNS = (
    "id",
    "phone_number",
    "full_name",
    "is_active",
    "total_collections",
    "points_earned",
    "last_assigned_at",
    "version",
    "created_at",
    "updated_at",
)

TASK_COLUMNS = (
    "id",
    "agent_id",
    "report_id",
    "report_kind",
    "status",
    "assigned_at",
    "started_at",
    "completed_at",
    "notes",
    "version",
)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    placeholders = ",".join(["%s"] * len(columns))
    return f"insert into {table} ({', '.join(columns)}) values ({placeholders})"


def _select_sql(table: str, columns: tuple[str, ...]) -> str:
    return f"select {', '.join(columns)} from {table}"


def _report_from_row(row: dict[str, Any]) -> Report:
    data = {k: v for k, v in row.items() if v is not None}
    if row["kind"] != ReportKind.WASTE.value:
        data.pop("category", None)
        data.pop("ai_detected_category", None)
    return _REPORT_ADAPTER.validate_python(data)


def _report_values(report: Report) -> list[object]:
    is_waste = isinstance(report, WasteReport)
    return [
        report.id,
        report.kind.value,
        report.owner_id,
        report.title,
        report.description,
        report.category.value if is_waste else None,
        report.ai_detected_category if is_waste else None,
        report.image_ref,
        report.image_url,
        report.location_lat,
        report.location_lng,
        report.location_address,
        report.status_value(),
        report.coins_earned,
        report.reward_pending,
        report.note,
        report.version,
        report.created_at,
        report.updated_at,
    ]


class PostgresLedgerStore:
    """Ledger store backed by the tables in sql/001_core.sql."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or Settings()

    def _cursor(self, row_factory: RowFactory[Any] = tuple_row):
        return db_cursor(self.settings, row_factory=row_factory)

    @staticmethod
    def _dict_rows(cursor: Cursor) -> None:
        cursor.row_factory = dict_row

    # Profiles

    def insert_profile(self, profile: Profile) -> Profile:
        values = [getattr(profile, column) for column in PROFILE_COLUMNS]
        try:
            with self._cursor() as cursor:
                cursor.execute(_insert_sql("public.profiles", PROFILE_COLUMNS), values)
        except errors.UniqueViolation as exc:
            raise Conflict(f"profile {profile.id} already exists") from exc
        return profile

    def get_profile(self, profile_id: str) -> Profile:
        with self._cursor(dict_row) as cursor:
            cursor.execute(
                _select_sql("public.profiles", PROFILE_COLUMNS) + " where id = %s",
                (profile_id,),
            )
            row = cursor.fetchone()
        if row is None:
            raise NotFound(f"profile {profile_id} not found")
        return Profile.model_validate(row)

    def list_profiles(self) -> list[Profile]:
        with self._cursor(dict_row) as cursor:
            cursor.execute(_select_sql("public.profiles", PROFILE_COLUMNS))
            rows = cursor.fetchall()
        return [Profile.model_validate(row) for row in rows]

    def delete_profile(self, profile_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("delete from public.profiles where id = %s", (profile_id,))
            if cursor.rowcount == 0:
                raise NotFound(f"profile {profile_id} not found")

    def credit_profile(self, profile_id: str, report_id: str, coins: int) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "select id from public.profiles where id = %s for update",
                (profile_id,),
            )
            if cursor.fetchone() is None:
                raise NotFound(f"profile {profile_id} not found")

            cursor.execute(
                "insert into public.profile_reward_ledger (report_id, profile_id, coins) "
                "values (%s, %s, %s) on conflict (report_id) do nothing returning report_id",
                (report_id, profile_id, coins),
            )
            if cursor.fetchone() is None:
                return False

            cursor.execute(
                "update public.profiles set "
                "eco_coins = eco_coins + %s, "
                "total_reports = total_reports + 1, "
                "level = greatest(level, (total_reports + 1) / 10 + 1), "
                "version = version + 1, updated_at = now() "
                "where id = %s",
                (coins, profile_id),
            )
        return True

    # Reports

    def insert_report(self, report: Report) -> Report:
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    _insert_sql("public.reports", REPORT_COLUMNS), _report_values(report)
                )
        except errors.UniqueViolation as exc:
            raise Conflict(f"report {report.id} already exists") from exc
        except errors.ForeignKeyViolation as exc:
            raise NotFound(f"profile {report.owner_id} not found") from exc
        return report

    def get_report(self, report_id: str) -> Report:
        with self._cursor() as cursor:
            return self._get_report(cursor, report_id)

    def _get_report(self, cursor: Cursor, report_id: str) -> Report:
        self._dict_rows(cursor)
        cursor.execute(
            _select_sql("public.reports", REPORT_COLUMNS) + " where id = %s",
            (report_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFound(f"report {report_id} not found")
        return _report_from_row(row)

    def list_reports(
        self,
        kind: Optional[ReportKind] = None,
        statuses: Optional[Iterable[str]] = None,
        owner_id: Optional[str] = None,
    ) -> list[Report]:
        conditions: list[str] = []
        params: list[object] = []
        if kind is not None:
            conditions.append("kind = %s")
            params.append(ReportKind(kind).value)
        if statuses is not None:
            conditions.append("status = any(%s)")
            params.append(list(statuses))
        if owner_id is not None:
            conditions.append("owner_id = %s")
            params.append(owner_id)

        query = _select_sql("public.reports", REPORT_COLUMNS)
        if conditions:
            query += " where " + " and ".join(conditions)
        query += " order by created_at, id"

        with self._cursor(dict_row) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [_report_from_row(row) for row in rows]

    def delete_report(self, report_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("delete from public.reports where id = %s", (report_id,))
            if cursor.rowcount == 0:
                raise NotFound(f"report {report_id} not found")

    def compare_and_swap_status(
        self,
        report_id: str,
        expected_version: int,
        new_status: str,
        note: Optional[str] = None,
        reward_pending: bool = False,
    ) -> Report:
        with self._cursor() as cursor:
            cursor.execute(
                "update public.reports set status = %s, note = coalesce(%s, note), "
                "reward_pending = reward_pending or %s, "
                "version = version + 1, updated_at = now() "
                "where id = %s and version = %s",
                (new_status, note, reward_pending, report_id, expected_version),
            )
            if cursor.rowcount == 0:
                current = self._get_report(cursor, report_id)
                raise Conflict(
                    f"report {report_id} is at version {current.version}, "
                    f"expected {expected_version}"
                )
            return self._get_report(cursor, report_id)

    def apply_reward_once(self, report_id: str, amount: int) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "update public.reports set coins_earned = %s, reward_pending = false, "
                "version = version + 1, updated_at = now() "
                "where id = %s and coins_earned = 0",
                (amount, report_id),
            )
            if cursor.rowcount == 0:
                # Either already rewarded or unknown; surface the latter.
                self._get_report(cursor, report_id)
                return False
        return True

    def list_unsettled_rewards(self) -> list[str]:
        with self._cursor() as cursor:
            cursor.execute(
                "select r.id from public.reports r "
                "where (r.reward_pending and r.coins_earned = 0) "
                "or (r.coins_earned > 0 and not exists ("
                "select 1 from public.profile_reward_ledger l where l.report_id = r.id"
                ")) order by r.updated_at, r.id"
            )
            return [row[0] for row in cursor.fetchall()]

    # Agents

    def insert_agent(self, agent: PickupAgent) -> PickupAgent:
        values = [getattr(agent, column) for column in AGENT_COLUMNS]
        try:
            with self._cursor() as cursor:
                cursor.execute(_insert_sql("public.pickup_agents", AGENT_COLUMNS), values)
        except errors.UniqueViolation as exc:
            raise Conflict(f"phone number {agent.phone_number} is already registered") from exc
        return agent

    def get_agent(self, agent_id: str) -> PickupAgent:
        agent = self._find_agent("id", agent_id)
        if agent is None:
            raise NotFound(f"agent {agent_id} not found")
        return agent

    def get_agent_by_phone(self, phone_number: str) -> Optional[PickupAgent]:
        return self._find_agent("phone_number", phone_number)

    def _find_agent(self, column: str, value: str) -> Optional[PickupAgent]:
        with self._cursor(dict_row) as cursor:
            cursor.execute(
                _select_sql("public.pickup_agents", AGENT_COLUMNS) + f" where {column} = %s",
                (value,),
            )
            row = cursor.fetchone()
        return PickupAgent.model_validate(row) if row else None

    def list_active_agents(self) -> list[PickupAgent]:
        with self._cursor(dict_row) as cursor:
            cursor.execute(
                _select_sql("public.pickup_agents", AGENT_COLUMNS) + " where is_active"
            )
            rows = cursor.fetchall()
        return [PickupAgent.model_validate(row) for row in rows]

    def set_agent_active(self, agent_id: str, is_active: bool) -> PickupAgent:
        with self._cursor() as cursor:
            cursor.execute(
                "update public.pickup_agents set is_active = %s, "
                "version = version + 1, updated_at = now() where id = %s",
                (is_active, agent_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"agent {agent_id} not found")
        return self.get_agent(agent_id)

    def touch_agent_assignment(self, agent_id: str, at: datetime) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "update public.pickup_agents set last_assigned_at = %s, "
                "version = version + 1, updated_at = now() where id = %s",
                (at, agent_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"agent {agent_id} not found")

    def credit_agent_collection(self, agent_id: str, task_id: str, points: int) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "insert into public.agent_collection_ledger (task_id, agent_id, points) "
                "values (%s, %s, %s) on conflict (task_id) do nothing returning task_id",
                (task_id, agent_id, points),
            )
            if cursor.fetchone() is None:
                return False
            cursor.execute(
                "update public.pickup_agents set "
                "total_collections = total_collections + 1, "
                "points_earned = points_earned + %s, "
                "version = version + 1, updated_at = now() where id = %s",
                (points, agent_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"agent {agent_id} not found")
        return True

    # Tasks

    def insert_task(self, task: CollectionTask) -> CollectionTask:
        values: list[object] = []
        for column in TASK_COLUMNS:
            value = getattr(task, column)
            values.append(value.value if column in ("status", "report_kind") else value)
        try:
            with self._cursor() as cursor:
                cursor.execute(_insert_sql("public.collection_tasks", TASK_COLUMNS), values)
        except errors.UniqueViolation as exc:
            raise Conflict(f"report {task.report_id} already has an active task") from exc
        return task

    def get_task(self, task_id: str) -> CollectionTask:
        with self._cursor() as cursor:
            return self._get_task(cursor, task_id)

    def _get_task(self, cursor: Cursor, task_id: str) -> CollectionTask:
        self._dict_rows(cursor)
        cursor.execute(
            _select_sql("public.collection_tasks", TASK_COLUMNS) + " where id = %s",
            (task_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFound(f"task {task_id} not found")
        return CollectionTask.model_validate(row)

    def get_active_task(self, report_id: str) -> Optional[CollectionTask]:
        tasks = self.list_tasks(
            report_id=report_id,
            statuses=(TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS),
        )
        return tasks[0] if tasks else None

    def list_tasks(
        self,
        agent_id: Optional[str] = None,
        report_id: Optional[str] = None,
        statuses: Optional[Iterable[TaskStatus]] = None,
    ) -> list[CollectionTask]:
        conditions: list[str] = []
        params: list[object] = []
        if agent_id is not None:
            conditions.append("agent_id = %s")
            params.append(agent_id)
        if report_id is not None:
            conditions.append("report_id = %s")
            params.append(report_id)
        if statuses is not None:
            conditions.append("status = any(%s)")
            params.append([TaskStatus(s).value for s in statuses])

        query = _select_sql("public.collection_tasks", TASK_COLUMNS)
        if conditions:
            query += " where " + " and ".join(conditions)
        query += " order by assigned_at, id"

        with self._cursor(dict_row) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [CollectionTask.model_validate(row) for row in rows]

    def compare_and_swap_task_status(
        self,
        task_id: str,
        expected_version: int,
        new_status: TaskStatus,
        at: datetime,
        notes: Optional[str] = None,
    ) -> CollectionTask:
        started_at = at if new_status == TaskStatus.IN_PROGRESS else None
        completed_at = (
            at if new_status in (TaskStatus.COMPLETED, TaskStatus.CANCELLED) else None
        )
        with self._cursor() as cursor:
            try:
                cursor.execute(
                    "update public.collection_tasks set status = %s, "
                    "started_at = coalesce(%s, started_at), "
                    "completed_at = coalesce(%s, completed_at), "
                    "notes = coalesce(%s, notes), version = version + 1 "
                    "where id = %s and version = %s",
                    (
                        TaskStatus(new_status).value,
                        started_at,
                        completed_at,
                        notes,
                        task_id,
                        expected_version,
                    ),
                )
            except errors.UniqueViolation as exc:
                raise Conflict(f"task {task_id} would duplicate an active task") from exc
            if cursor.rowcount == 0:
                current = self._get_task(cursor, task_id)
                raise Conflict(
                    f"task {task_id} is at version {current.version}, "
                    f"expected {expected_version}"
                )
            return self._get_task(cursor, task_id)

    # Dispatch queue

    def enqueue_dispatch(self, report_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "insert into public.dispatch_queue (report_id) values (%s) "
                "on conflict (report_id) do nothing",
                (report_id,),
            )

    def dequeue_dispatch(self, report_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("delete from public.dispatch_queue where report_id = %s", (report_id,))

    def list_dispatch_queue(self) -> list[str]:
        with self._cursor() as cursor:
            cursor.execute(
                "select report_id from public.dispatch_queue order by queued_at, report_id"
            )
            return [row[0] for row in cursor.fetchall()]


def apply_schema(settings: Optional[Settings] = None, schema_sql: Optional[str] = None) -> None:
    """Apply the bundled DDL to the configured database."""
    from ecotrack.store.schema import load_schema

    sql = schema_sql if schema_sql is not None else load_schema()
    with db_cursor(settings) as cursor:
        cursor.execute(sql)
    logger.info("db.schema.applied")
