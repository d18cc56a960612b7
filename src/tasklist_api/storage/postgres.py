"""PostgreSQL-backed task store (psycopg 3, async connections).

Every statement is sent with bound parameters. psycopg errors are wrapped in
StoreError and never retried here.
"""

from __future__ import annotations

import logging
from typing import Any

from tasklist_api.core.models import (
    CustomColumn,
    CustomColumnValue,
    GroupDimension,
    StatusCategory,
)
from tasklist_api.core.query_planner import QueryPlan, escape_like
from tasklist_api.errors import InvalidInputError, StoreError

logger = logging.getLogger(__name__)

_GROUP_SHELL_QUERIES: dict[GroupDimension, str] = {
    GroupDimension.STATUS: """
        SELECT id::text AS id,
               name,
               (SELECT color_code FROM sys_task_status_categories
                 WHERE id = task_statuses.category_id) AS color_code,
               (SELECT color_code_dark FROM sys_task_status_categories
                 WHERE id = task_statuses.category_id) AS color_code_dark,
               category_id::text AS category_id
        FROM task_statuses
        WHERE project_id = %s::uuid
        ORDER BY sort_order
        """,
    GroupDimension.PRIORITY: """
        SELECT id::text AS id, name, color_code, color_code_dark
        FROM task_priorities
        ORDER BY value DESC
        """,
    GroupDimension.LABELS: """
        SELECT id::text AS id, name, color_code
        FROM team_labels
        WHERE team_id = %s::uuid
          AND EXISTS(SELECT 1
                     FROM tasks
                     WHERE project_id = %s::uuid
                       AND EXISTS(SELECT 1 FROM task_labels
                                  WHERE task_id = tasks.id AND label_id = team_labels.id))
        ORDER BY name
        """,
    GroupDimension.PHASE: """
        SELECT id::text AS id, name, color_code, color_code AS color_code_dark,
               start_date, end_date, sort_index
        FROM project_phases
        WHERE project_id = %s::uuid
        ORDER BY sort_index DESC
        """,
}

_CATEGORY_COLUMNS = "stsc.is_todo, stsc.is_doing, stsc.is_done"


class PostgresTaskStore:
    """Task store reading and writing the project management schema."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    # ---- planned reads ----

    async def fetch_tasks(self, plan: QueryPlan) -> list[dict[str, Any]]:
        return await self._fetch_all(plan.sql, plan.params)

    async def fetch_count(self, plan: QueryPlan) -> int:
        row = await self._fetch_one(plan.sql, plan.params)
        return int(row["total"]) if row else 0

    async def list_group_shells(
        self,
        dimension: GroupDimension,
        project_id: str,
        *,
        team_id: str | None = None,
    ) -> list[dict[str, Any]]:
        sql = _GROUP_SHELL_QUERIES[dimension]
        if dimension == GroupDimension.PRIORITY:
            params: tuple[Any, ...] = ()
        elif dimension == GroupDimension.LABELS:
            if not team_id:
                raise InvalidInputError("team id is required to group by labels")
            params = (team_id, project_id)
        else:
            params = (project_id,)
        return await self._fetch_all(sql, params)

    # ---- dependency gate ----

    async def get_task_project_id(self, task_id: str) -> str | None:
        row = await self._fetch_one(
            "SELECT project_id::text AS project_id FROM tasks WHERE id = %s::uuid",
            (task_id,),
        )
        return row["project_id"] if row else None

    async def get_status_category(self, status_id: str, project_id: str) -> StatusCategory | None:
        row = await self._fetch_one(
            f"""
            SELECT {_CATEGORY_COLUMNS}
            FROM task_statuses ts
            JOIN sys_task_status_categories stsc ON stsc.id = ts.category_id
            WHERE ts.id = %s::uuid
              AND ts.project_id = %s::uuid
            """,
            (status_id, project_id),
        )
        return StatusCategory.model_validate(row) if row else None

    async def list_dependency_categories(self, task_id: str) -> list[StatusCategory | None]:
        rows = await self._fetch_all(
            f"""
            SELECT {_CATEGORY_COLUMNS}
            FROM task_dependencies td
            JOIN tasks t ON t.id = td.related_task_id
            LEFT JOIN task_statuses ts ON ts.id = t.status_id AND ts.project_id = t.project_id
            LEFT JOIN sys_task_status_categories stsc ON stsc.id = ts.category_id
            WHERE td.task_id = %s::uuid
            """,
            (task_id,),
        )
        return [
            StatusCategory.model_validate(row) if row["is_done"] is not None else None
            for row in rows
        ]

    # ---- single task and decoration helpers ----

    async def get_single_task(self, task_id: str, *, user_id: str | None) -> dict[str, Any] | None:
        row = await self._fetch_one(
            "SELECT get_single_task(%s::uuid) AS task",
            (task_id,),
        )
        task = row.get("task") if row else None
        return dict(task) if task else None

    async def get_task_assignees(self, task_id: str) -> list[dict[str, Any]]:
        row = await self._fetch_one(
            "SELECT get_task_assignees(%s::uuid) AS assignees",
            (task_id,),
        )
        return list(row.get("assignees") or []) if row else []

    async def get_task_labels(self, task_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            """
            SELECT tl.label_id::text AS id, lbl.name, lbl.color_code
            FROM task_labels tl
            JOIN team_labels lbl ON lbl.id = tl.label_id
            WHERE tl.task_id = %s::uuid
            ORDER BY lbl.name
            """,
            (task_id,),
        )

    async def get_task_complete_ratio(self, task_id: str) -> dict[str, Any]:
        row = await self._fetch_one(
            "SELECT get_task_complete_ratio(%s::uuid) AS info",
            (task_id,),
        )
        if not row or not row.get("info"):
            raise StoreError(f"No completion info for task {task_id}")
        return dict(row["info"])

    async def get_status_color(self, status_id: str) -> dict[str, Any] | None:
        return await self._fetch_one(
            """
            SELECT color_code, color_code_dark
            FROM sys_task_status_categories
            WHERE id = (SELECT category_id FROM task_statuses WHERE id = %s::uuid)
            """,
            (status_id,),
        )

    # ---- writes ----

    async def move_task(
        self,
        task_id: str,
        *,
        project_id: str,
        parent_task_id: str | None,
        status_id: str | None = None,
        priority_id: str | None = None,
    ) -> None:
        assignments = [
            "parent_task_id = %s::uuid",
            "sort_order = COALESCE((SELECT MAX(sort_order) + 1 FROM tasks WHERE project_id = %s::uuid), 0)",
        ]
        params: list[Any] = [parent_task_id, project_id]
        if status_id is not None:
            assignments.append("status_id = %s::uuid")
            params.append(status_id)
        if priority_id is not None:
            assignments.append("priority_id = %s::uuid")
            params.append(priority_id)
        params.append(task_id)
        await self._execute(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = %s::uuid",
            params,
        )

    async def set_task_phase(self, task_id: str, phase_id: str | None) -> None:
        await self._execute(
            "SELECT handle_on_task_phase_change(%s::uuid, %s::uuid)",
            (task_id, phase_id),
        )

    async def toggle_task_label(self, task_id: str, label_id: str) -> None:
        await self._execute(
            "SELECT add_or_remove_task_label(%s::uuid, %s::uuid) AS labels",
            (task_id, label_id),
        )

    async def get_custom_column(self, project_id: str, key: str) -> CustomColumn | None:
        row = await self._fetch_one(
            """
            SELECT id::text AS id, key, field_type
            FROM cc_custom_columns
            WHERE project_id = %s::uuid AND key = %s
            """,
            (project_id, key),
        )
        return CustomColumn.model_validate(row) if row else None

    async def upsert_custom_column_value(
        self,
        task_id: str,
        column_id: str,
        value: CustomColumnValue,
    ) -> None:
        slots = (
            value.text_value,
            value.number_value,
            value.date_value,
            value.boolean_value,
            self._json_wrapper(value.json_value) if value.json_value is not None else None,
        )
        try:
            async with await self._connect() as conn:
                cur = await conn.execute(
                    "SELECT id FROM cc_column_values WHERE task_id = %s::uuid AND column_id = %s::uuid",
                    (task_id, column_id),
                )
                existing = await cur.fetchone()
                if existing:
                    await conn.execute(
                        """
                        UPDATE cc_column_values
                        SET text_value = %s,
                            number_value = %s,
                            date_value = %s,
                            boolean_value = %s,
                            json_value = %s,
                            updated_at = NOW()
                        WHERE task_id = %s::uuid AND column_id = %s::uuid
                        """,
                        (*slots, task_id, column_id),
                    )
                else:
                    await conn.execute(
                        """
                        INSERT INTO cc_column_values (
                            task_id,
                            column_id,
                            text_value,
                            number_value,
                            date_value,
                            boolean_value,
                            json_value,
                            created_at,
                            updated_at
                        ) VALUES (%s::uuid, %s::uuid, %s, %s, %s, %s, %s, NOW(), NOW())
                        """,
                        (task_id, column_id, *slots),
                    )
                await conn.commit()
        except self._psycopg.Error as exc:
            raise self._store_error("upsert_custom_column_value", exc) from exc

    # ---- lookups ----

    async def search_tasks_by_name(
        self,
        project_id: str,
        *,
        exclude_task_id: str | None,
        text: str,
        limit: int,
    ) -> list[dict[str, Any]]:
        return await self._fetch_all(
            """
            SELECT t.id::text AS value,
                   t.name AS label,
                   CONCAT((SELECT key FROM projects WHERE id = t.project_id), '-', t.task_no) AS task_key
            FROM tasks t
            WHERE t.name ILIKE %s ESCAPE '\\'
              AND t.project_id = %s::uuid
              AND t.id IS DISTINCT FROM %s::uuid
            LIMIT %s
            """,
            (f"%{escape_like(text)}%", project_id, exclude_task_id, limit),
        )

    async def list_subscribers(self, task_id: str) -> list[dict[str, Any]]:
        return await self._fetch_all(
            """
            SELECT u.name,
                   u.avatar_url,
                   ts.user_id::text AS user_id,
                   ts.team_member_id::text AS team_member_id,
                   ts.task_id::text AS task_id
            FROM task_subscribers ts
            LEFT JOIN users u ON ts.user_id = u.id
            WHERE ts.task_id = %s::uuid
            """,
            (task_id,),
        )

    async def is_user_assigned(self, task_id: str, user_id: str, team_id: str) -> bool:
        row = await self._fetch_one(
            """
            SELECT EXISTS(
                SELECT 1
                FROM tasks_assignees ta
                JOIN team_member_info_view tmi ON tmi.team_member_id = ta.team_member_id
                WHERE ta.task_id = %s::uuid
                  AND tmi.user_id = %s::uuid
                  AND tmi.team_id = %s::uuid
            ) AS assigned
            """,
            (task_id, user_id, team_id),
        )
        return bool(row and row["assigned"])

    # ---- connection helpers ----

    async def _connect(self) -> Any:
        """Open an async psycopg connection that yields dict rows."""
        return await self._psycopg.AsyncConnection.connect(
            self.database_url,
            row_factory=self._dict_row,
        )

    async def _fetch_all(self, sql: str, params: Any = ()) -> list[dict[str, Any]]:
        try:
            async with await self._connect() as conn:
                cur = await conn.execute(sql, params)
                return [dict(row) for row in await cur.fetchall()]
        except self._psycopg.Error as exc:
            raise self._store_error("fetch_all", exc) from exc

    async def _fetch_one(self, sql: str, params: Any = ()) -> dict[str, Any] | None:
        try:
            async with await self._connect() as conn:
                cur = await conn.execute(sql, params)
                row = await cur.fetchone()
        except self._psycopg.Error as exc:
            raise self._store_error("fetch_one", exc) from exc
        return dict(row) if row is not None else None

    async def _execute(self, sql: str, params: Any = ()) -> None:
        try:
            async with await self._connect() as conn:
                await conn.execute(sql, params)
                await conn.commit()
        except self._psycopg.Error as exc:
            raise self._store_error("execute", exc) from exc

    @staticmethod
    def _store_error(operation: str, exc: Exception) -> StoreError:
        logger.error("task_store event=failed operation=%s error=%s", operation, exc)
        return StoreError(f"Task store {operation} failed")

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json
