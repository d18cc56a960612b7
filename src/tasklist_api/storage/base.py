"""Storage interface consumed by the task list engine.

Row-returning methods hand back plain dicts shaped like the Postgres rows so
that every backend feeds the same pydantic models.
"""

from __future__ import annotations

from typing import Any, Protocol

from tasklist_api.core.models import (
    CustomColumn,
    CustomColumnValue,
    GroupDimension,
    StatusCategory,
)
from tasklist_api.core.query_planner import QueryPlan


class TaskStore(Protocol):
    # ---- planned reads ----

    async def fetch_tasks(self, plan: QueryPlan) -> list[dict[str, Any]]: ...

    async def fetch_count(self, plan: QueryPlan) -> int: ...

    async def list_group_shells(
        self,
        dimension: GroupDimension,
        project_id: str,
        *,
        team_id: str | None = None,
    ) -> list[dict[str, Any]]: ...

    # ---- dependency gate ----

    async def get_task_project_id(self, task_id: str) -> str | None: ...

    async def get_status_category(self, status_id: str, project_id: str) -> StatusCategory | None:
        """Category of a status, or None when the status is not part of the project."""
        ...

    async def list_dependency_categories(self, task_id: str) -> list[StatusCategory | None]:
        """Categories of the tasks `task_id` depends on; None when unresolvable."""
        ...

    # ---- single task and decoration helpers ----

    async def get_single_task(self, task_id: str, *, user_id: str | None) -> dict[str, Any] | None: ...

    async def get_task_assignees(self, task_id: str) -> list[dict[str, Any]]: ...

    async def get_task_labels(self, task_id: str) -> list[dict[str, Any]]: ...

    async def get_task_complete_ratio(self, task_id: str) -> dict[str, Any]:
        """`{ratio, total_completed, total_tasks}` over the task and its sub-tasks."""
        ...

    async def get_status_color(self, status_id: str) -> dict[str, Any] | None: ...

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
        """Set the parent and put the task after every other task of the project."""
        ...

    async def set_task_phase(self, task_id: str, phase_id: str | None) -> None: ...

    async def toggle_task_label(self, task_id: str, label_id: str) -> None: ...

    async def get_custom_column(self, project_id: str, key: str) -> CustomColumn | None: ...

    async def upsert_custom_column_value(
        self,
        task_id: str,
        column_id: str,
        value: CustomColumnValue,
    ) -> None: ...

    # ---- lookups ----

    async def search_tasks_by_name(
        self,
        project_id: str,
        *,
        exclude_task_id: str | None,
        text: str,
        limit: int,
    ) -> list[dict[str, Any]]: ...

    async def list_subscribers(self, task_id: str) -> list[dict[str, Any]]: ...

    async def is_user_assigned(self, task_id: str, user_id: str, team_id: str) -> bool:
        """True when the user's membership in the team is assigned to the task."""
        ...
