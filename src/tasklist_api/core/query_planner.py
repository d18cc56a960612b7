"""Task query planner.

Combines composed predicates with search, sort, and the response shape into
one parameterized statement. The same predicate list feeds both the full task
list and the count-only form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from tasklist_api.core.filters import Predicate, compose_predicates, join_predicates
from tasklist_api.core.models import FilterCriteria

# Whitelisted sort columns; user input only ever selects a key from this map.
SORT_COLUMNS: dict[str, str] = {
    "sort_order": "t.sort_order",
    "name": "t.name",
    "created_at": "t.created_at",
    "updated_at": "t.updated_at",
    "start_date": "t.start_date",
    "end_date": "t.end_date",
    "completed_at": "t.completed_at",
    "priority_value": "priority_value",
}

_TASK_COLUMNS = """
    t.id::text AS id,
    t.name,
    CONCAT((SELECT key FROM projects WHERE id = t.project_id), '-', t.task_no) AS task_key,
    (SELECT name FROM projects WHERE id = t.project_id) AS project_name,
    t.project_id::text AS project_id,
    t.parent_task_id::text AS parent_task_id,
    (SELECT name FROM tasks WHERE id = t.parent_task_id) AS parent_task_name,
    (SELECT COUNT(*) FROM tasks WHERE parent_task_id = t.id)::INT AS sub_tasks_count,
    t.status_id::text AS status,
    t.archived,
    t.description,
    t.sort_order,
    (SELECT phase_id::text FROM task_phase WHERE task_id = t.id) AS phase_id,
    (SELECT name FROM project_phases
      WHERE id = (SELECT phase_id FROM task_phase WHERE task_id = t.id)) AS phase_name,
    (SELECT color_code FROM project_phases
      WHERE id = (SELECT phase_id FROM task_phase WHERE task_id = t.id)) AS phase_color_code,
    EXISTS(SELECT 1 FROM task_subscribers WHERE task_id = t.id) AS has_subscribers,
    EXISTS(SELECT 1 FROM task_dependencies td WHERE td.task_id = t.id) AS has_dependencies,
    (SELECT start_time FROM task_timers
      WHERE task_id = t.id AND user_id = %s::uuid) AS timer_start_time,
    (SELECT color_code FROM sys_task_status_categories
      WHERE id = (SELECT category_id FROM task_statuses WHERE id = t.status_id)) AS status_color,
    (SELECT color_code_dark FROM sys_task_status_categories
      WHERE id = (SELECT category_id FROM task_statuses WHERE id = t.status_id))
      AS status_color_dark,
    (SELECT COALESCE(ROW_TO_JSON(r), '{}'::JSON)
       FROM (SELECT is_done, is_doing, is_todo
               FROM sys_task_status_categories
              WHERE id = (SELECT category_id FROM task_statuses WHERE id = t.status_id)) r)
      AS status_category,
    (SELECT COUNT(*) FROM task_comments WHERE task_id = t.id)::INT AS comments_count,
    (SELECT COUNT(*) FROM task_attachments WHERE task_id = t.id)::INT AS attachments_count,
    (CASE WHEN EXISTS(SELECT 1 FROM tasks_with_status_view v
                       WHERE v.task_id = t.id AND v.is_done IS TRUE) THEN 1 ELSE 0 END)
      AS parent_task_completed,
    (SELECT get_task_assignees(t.id)) AS assignees,
    (SELECT COUNT(*) FROM tasks_with_status_view tt
      WHERE tt.parent_task_id = t.id AND tt.is_done IS TRUE)::INT AS completed_sub_tasks,
    (SELECT COALESCE(JSON_AGG(r), '[]'::JSON)
       FROM (SELECT task_labels.label_id::text AS id,
                    (SELECT name FROM team_labels WHERE id = task_labels.label_id),
                    (SELECT color_code FROM team_labels WHERE id = task_labels.label_id)
               FROM task_labels
              WHERE task_id = t.id) r) AS labels,
    (SELECT is_completed(t.status_id, t.project_id)) AS is_complete,
    (SELECT name FROM users WHERE id = t.reporter_id) AS reporter,
    t.priority_id::text AS priority,
    (SELECT value FROM task_priorities WHERE id = t.priority_id) AS priority_value,
    COALESCE(t.total_minutes, 0)::INT AS total_minutes,
    COALESCE((SELECT SUM(time_spent) FROM task_work_log WHERE task_id = t.id), 0)::INT
      AS total_minutes_spent,
    t.created_at,
    t.updated_at,
    t.completed_at,
    t.start_date,
    t.end_date,
    t.billable,
    t.schedule_id::text AS schedule_id"""

_CUSTOM_COLUMNS = """,
    (SELECT COALESCE(jsonb_object_agg(custom_cols.key, custom_cols.value), '{}'::JSONB)
       FROM (SELECT cc.key,
                    CASE
                      WHEN ccv.text_value IS NOT NULL THEN to_jsonb(ccv.text_value)
                      WHEN ccv.number_value IS NOT NULL THEN to_jsonb(ccv.number_value)
                      WHEN ccv.boolean_value IS NOT NULL THEN to_jsonb(ccv.boolean_value)
                      WHEN ccv.date_value IS NOT NULL THEN to_jsonb(ccv.date_value)
                      WHEN ccv.json_value IS NOT NULL THEN ccv.json_value
                      ELSE NULL::JSONB
                    END AS value
               FROM cc_column_values ccv
               JOIN cc_custom_columns cc ON ccv.column_id = cc.id
              WHERE ccv.task_id = t.id) AS custom_cols
      WHERE custom_cols.value IS NOT NULL) AS custom_column_values"""

# Member listings span projects, so each row carries its own project's statuses.
_MEMBER_STATUSES = """,
    (SELECT COALESCE(JSON_AGG(rec), '[]'::JSON)
       FROM (SELECT task_statuses.id::text AS id, task_statuses.name, stsc.color_code
               FROM task_statuses
               JOIN sys_task_status_categories stsc ON task_statuses.category_id = stsc.id
              WHERE task_statuses.project_id = t.project_id
              ORDER BY task_statuses.name) rec) AS statuses"""


@dataclass(frozen=True)
class QueryPlan:
    """One executable statement plus the intent it was built from."""

    sql: str
    params: tuple[Any, ...]
    predicates: tuple[Predicate, ...]
    search: str | None = None
    sort_field: str = "sort_order"
    descending: bool = False
    count_only: bool = False
    user_id: str | None = None
    extras: dict[str, bool] = field(default_factory=dict)


def plan_task_query(criteria: FilterCriteria, *, scope_id: str, user_id: str | None) -> QueryPlan:
    """Build the single fetch for a flat list or count of tasks."""
    predicates = compose_predicates(criteria, scope_id=scope_id)
    where_clause, where_params = join_predicates(predicates)
    search = (criteria.search or "").strip() or None

    search_clause = ""
    search_params: list[Any] = []
    if search:
        search_clause = " AND t.name ILIKE %s ESCAPE '\\'"
        search_params.append(f"%{escape_like(search)}%")

    if criteria.count_only:
        sql = f"SELECT COUNT(*)::INT AS total FROM tasks t WHERE {where_clause}{search_clause}"
        return QueryPlan(
            sql=sql,
            params=tuple([*where_params, *search_params]),
            predicates=tuple(predicates),
            search=search,
            count_only=True,
        )

    columns = _TASK_COLUMNS
    if criteria.include_custom_columns:
        columns += _CUSTOM_COLUMNS
    include_statuses = criteria.filter_by == "member"
    if include_statuses:
        columns += _MEMBER_STATUSES

    direction = "DESC" if criteria.sort_order == "descend" else "ASC"
    order_by = f"{SORT_COLUMNS[criteria.sort_field]} {direction}, t.id ASC"
    sql = (
        f"SELECT {columns}\n"
        f"FROM tasks t\n"
        f"WHERE {where_clause}{search_clause}\n"
        f"ORDER BY {order_by}"
    )
    return QueryPlan(
        sql=sql,
        params=tuple([user_id, *where_params, *search_params]),
        predicates=tuple(predicates),
        search=search,
        sort_field=criteria.sort_field,
        descending=direction == "DESC",
        user_id=user_id,
        extras={
            "custom_columns": criteria.include_custom_columns,
            "statuses": include_statuses,
        },
    )


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so a search term only matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
