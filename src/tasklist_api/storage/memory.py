"""In-memory task store for tests only.

Evaluates the same predicates the planner emits for Postgres, so tests
exercise the real composition and planning code paths.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from tasklist_api.core.models import (
    CustomColumn,
    CustomColumnValue,
    GroupDimension,
    StatusCategory,
)
from tasklist_api.core.query_planner import QueryPlan
from tasklist_api.errors import InvalidInputError

CategoryName = Literal["todo", "doing", "done"]

CATEGORY_COLORS: dict[str, tuple[str, str]] = {
    "todo": ("#a9a9a9", "#989898"),
    "doing": ("#70a6f3", "#4190ff"),
    "done": ("#75c997", "#46d980"),
}


class InMemoryTaskStore:
    """Simple in-memory implementation of TaskStore for unit tests."""

    def __init__(self) -> None:
        self.projects: dict[str, dict[str, Any]] = {}
        self.statuses: dict[str, dict[str, Any]] = {}
        self.priorities: dict[str, dict[str, Any]] = {}
        self.phases: dict[str, dict[str, Any]] = {}
        self.labels: dict[str, dict[str, Any]] = {}
        self.members: dict[str, dict[str, Any]] = {}
        self.tasks: dict[str, dict[str, Any]] = {}
        self.task_labels: dict[str, list[str]] = {}
        self.assignees: dict[str, list[str]] = {}
        self.dependencies: list[tuple[str, str]] = []
        self.custom_columns: dict[str, dict[str, Any]] = {}
        self.column_values: dict[tuple[str, str], CustomColumnValue] = {}
        self.subscribers: dict[str, list[dict[str, Any]]] = {}
        self.timers: dict[tuple[str, str], datetime] = {}
        # Every write call in order, for assertions on write sequencing.
        self.write_log: list[tuple[str, tuple[Any, ...]]] = []

    # ---- seeding ----

    def add_project(self, name: str, key: str) -> str:
        project_id = str(uuid4())
        self.projects[project_id] = {"id": project_id, "name": name, "key": key, "next_no": 1}
        return project_id

    def add_status(
        self,
        project_id: str,
        name: str,
        category: CategoryName | None,
    ) -> str:
        status_id = str(uuid4())
        self.statuses[status_id] = {
            "id": status_id,
            "name": name,
            "project_id": project_id,
            "category": category,
            "sort_order": len(self.statuses),
        }
        return status_id

    def add_priority(self, name: str, value: int, color_code: str = "#75c997") -> str:
        priority_id = str(uuid4())
        self.priorities[priority_id] = {
            "id": priority_id,
            "name": name,
            "value": value,
            "color_code": color_code,
            "color_code_dark": color_code,
        }
        return priority_id

    def add_phase(self, project_id: str, name: str, color_code: str = "#9877ca", **dates: Any) -> str:
        phase_id = str(uuid4())
        self.phases[phase_id] = {
            "id": phase_id,
            "name": name,
            "project_id": project_id,
            "color_code": color_code,
            "start_date": dates.get("start_date"),
            "end_date": dates.get("end_date"),
            "sort_index": len(self.phases),
        }
        return phase_id

    def add_label(self, team_id: str, name: str, color_code: str = "#f37070") -> str:
        label_id = str(uuid4())
        self.labels[label_id] = {
            "id": label_id,
            "name": name,
            "color_code": color_code,
            "team_id": team_id,
        }
        return label_id

    def add_member(
        self,
        name: str,
        *,
        user_id: str | None = None,
        team_id: str | None = None,
    ) -> str:
        member_id = str(uuid4())
        self.members[member_id] = {
            "team_member_id": member_id,
            "name": name,
            "avatar_url": None,
            "user_id": user_id,
            "team_id": team_id,
        }
        return member_id

    def add_task(
        self,
        project_id: str,
        name: str,
        *,
        status_id: str | None,
        priority_id: str | None = None,
        phase_id: str | None = None,
        parent_task_id: str | None = None,
        archived: bool = False,
        sort_order: int | None = None,
        labels: tuple[str, ...] = (),
        assignees: tuple[str, ...] = (),
        total_minutes: int = 0,
    ) -> str:
        task_id = str(uuid4())
        project = self.projects[project_id]
        now = datetime.now(UTC)
        self.tasks[task_id] = {
            "id": task_id,
            "name": name,
            "project_id": project_id,
            "task_no": project["next_no"],
            "parent_task_id": parent_task_id,
            "status_id": status_id,
            "priority_id": priority_id,
            "phase_id": phase_id,
            "archived": archived,
            "sort_order": len(self.tasks) if sort_order is None else sort_order,
            "description": None,
            "total_minutes": total_minutes,
            "created_at": now,
            "updated_at": now,
        }
        project["next_no"] += 1
        self.task_labels[task_id] = list(labels)
        self.assignees[task_id] = list(assignees)
        return task_id

    def add_dependency(self, task_id: str, related_task_id: str) -> None:
        self.dependencies.append((task_id, related_task_id))

    def add_custom_column(self, project_id: str, key: str, field_type: str) -> str:
        column_id = str(uuid4())
        self.custom_columns[column_id] = {
            "id": column_id,
            "project_id": project_id,
            "key": key,
            "field_type": field_type,
        }
        return column_id

    def add_subscriber(self, task_id: str, name: str, *, user_id: str | None = None) -> None:
        self.subscribers.setdefault(task_id, []).append(
            {
                "name": name,
                "avatar_url": None,
                "user_id": user_id,
                "team_member_id": None,
                "task_id": task_id,
            }
        )

    def start_timer(self, task_id: str, user_id: str) -> None:
        self.timers[(task_id, user_id)] = datetime.now(UTC)

    # ---- planned reads ----

    async def fetch_tasks(self, plan: QueryPlan) -> list[dict[str, Any]]:
        matched = [task for task in self.tasks.values() if self._matches(task, plan)]
        matched.sort(key=lambda task: task["id"])
        matched.sort(
            key=lambda task: _sort_key(self._sort_value(task, plan.sort_field)),
            reverse=plan.descending,
        )
        return [
            self._row(
                task,
                user_id=plan.user_id,
                custom_columns=plan.extras.get("custom_columns", False),
                statuses=plan.extras.get("statuses", False),
            )
            for task in matched
        ]

    async def fetch_count(self, plan: QueryPlan) -> int:
        return sum(1 for task in self.tasks.values() if self._matches(task, plan))

    async def list_group_shells(
        self,
        dimension: GroupDimension,
        project_id: str,
        *,
        team_id: str | None = None,
    ) -> list[dict[str, Any]]:
        if dimension == GroupDimension.STATUS:
            rows = []
            for status in sorted(self.statuses.values(), key=lambda s: s["sort_order"]):
                if status["project_id"] != project_id:
                    continue
                color, dark = CATEGORY_COLORS.get(status["category"] or "", (None, None))
                rows.append(
                    {
                        "id": status["id"],
                        "name": status["name"],
                        "color_code": color,
                        "color_code_dark": dark,
                        "category_id": status["category"],
                    }
                )
            return rows
        if dimension == GroupDimension.PRIORITY:
            return [
                dict(priority)
                for priority in sorted(self.priorities.values(), key=lambda p: -p["value"])
            ]
        if dimension == GroupDimension.PHASE:
            return [
                dict(phase)
                for phase in sorted(self.phases.values(), key=lambda p: -p["sort_index"])
                if phase["project_id"] == project_id
            ]
        if not team_id:
            raise InvalidInputError("team id is required to group by labels")
        used = {
            label_id
            for task_id, label_ids in self.task_labels.items()
            if self.tasks[task_id]["project_id"] == project_id
            for label_id in label_ids
        }
        return [
            {"id": label["id"], "name": label["name"], "color_code": label["color_code"]}
            for label in sorted(self.labels.values(), key=lambda lbl: lbl["name"])
            if label["team_id"] == team_id and label["id"] in used
        ]

    # ---- dependency gate ----

    async def get_task_project_id(self, task_id: str) -> str | None:
        task = self.tasks.get(task_id)
        return task["project_id"] if task else None

    async def get_status_category(self, status_id: str, project_id: str) -> StatusCategory | None:
        status = self.statuses.get(status_id)
        if status is None or status["project_id"] != project_id or status["category"] is None:
            return None
        return StatusCategory.of(status["category"])

    async def list_dependency_categories(self, task_id: str) -> list[StatusCategory | None]:
        categories: list[StatusCategory | None] = []
        for source, related in self.dependencies:
            if source != task_id or related not in self.tasks:
                continue
            categories.append(self._category(self.tasks[related]))
        return categories

    # ---- single task and decoration helpers ----

    async def get_single_task(self, task_id: str, *, user_id: str | None) -> dict[str, Any] | None:
        task = self.tasks.get(task_id)
        if task is None:
            return None
        return self._row(task, user_id=user_id, custom_columns=True, statuses=False)

    async def get_task_assignees(self, task_id: str) -> list[dict[str, Any]]:
        return [dict(self.members[m]) for m in self.assignees.get(task_id, [])]

    async def get_task_labels(self, task_id: str) -> list[dict[str, Any]]:
        rows = [
            {"id": label_id, "name": self.labels[label_id]["name"], "color_code": self.labels[label_id]["color_code"]}
            for label_id in self.task_labels.get(task_id, [])
        ]
        return sorted(rows, key=lambda row: row["name"])

    async def get_task_complete_ratio(self, task_id: str) -> dict[str, Any]:
        family = [self.tasks[task_id]] + self._children(task_id)
        completed = sum(1 for task in family if self._is_done(task))
        return {
            "ratio": completed * 100 / len(family),
            "total_completed": completed,
            "total_tasks": len(family),
        }

    async def get_status_color(self, status_id: str) -> dict[str, Any] | None:
        status = self.statuses.get(status_id)
        if status is None or status["category"] is None:
            return None
        color, dark = CATEGORY_COLORS[status["category"]]
        return {"color_code": color, "color_code_dark": dark}

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
        self.write_log.append(("move_task", (task_id, parent_task_id, status_id, priority_id)))
        orders = [t["sort_order"] for t in self.tasks.values() if t["project_id"] == project_id]
        task = self.tasks[task_id]
        task["parent_task_id"] = parent_task_id
        task["sort_order"] = max(orders) + 1 if orders else 0
        if status_id is not None:
            task["status_id"] = status_id
        if priority_id is not None:
            task["priority_id"] = priority_id
        task["updated_at"] = datetime.now(UTC)

    async def set_task_phase(self, task_id: str, phase_id: str | None) -> None:
        self.write_log.append(("set_task_phase", (task_id, phase_id)))
        self.tasks[task_id]["phase_id"] = phase_id

    async def toggle_task_label(self, task_id: str, label_id: str) -> None:
        self.write_log.append(("toggle_task_label", (task_id, label_id)))
        current = self.task_labels.setdefault(task_id, [])
        if label_id in current:
            current.remove(label_id)
        else:
            current.append(label_id)

    async def get_custom_column(self, project_id: str, key: str) -> CustomColumn | None:
        for column in self.custom_columns.values():
            if column["project_id"] == project_id and column["key"] == key:
                return CustomColumn.model_validate(column)
        return None

    async def upsert_custom_column_value(
        self,
        task_id: str,
        column_id: str,
        value: CustomColumnValue,
    ) -> None:
        self.write_log.append(("upsert_custom_column_value", (task_id, column_id)))
        self.column_values[(task_id, column_id)] = value

    # ---- lookups ----

    async def search_tasks_by_name(
        self,
        project_id: str,
        *,
        exclude_task_id: str | None,
        text: str,
        limit: int,
    ) -> list[dict[str, Any]]:
        needle = text.lower()
        hits = [
            {"value": task["id"], "label": task["name"], "task_key": self._task_key(task)}
            for task in self.tasks.values()
            if task["project_id"] == project_id
            and task["id"] != exclude_task_id
            and needle in task["name"].lower()
        ]
        return hits[:limit]

    async def list_subscribers(self, task_id: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self.subscribers.get(task_id, [])]

    async def is_user_assigned(self, task_id: str, user_id: str, team_id: str) -> bool:
        return any(
            self.members[member_id]["user_id"] == user_id
            and self.members[member_id]["team_id"] == team_id
            for member_id in self.assignees.get(task_id, [])
        )

    # ---- helpers ----

    def _matches(self, task: dict[str, Any], plan: QueryPlan) -> bool:
        for predicate in plan.predicates:
            if not self._predicate_holds(task, predicate.name, predicate.params):
                return False
        if plan.search and plan.search.lower() not in task["name"].lower():
            return False
        return True

    def _predicate_holds(self, task: dict[str, Any], name: str, params: tuple[Any, ...]) -> bool:
        task_id = task["id"]
        if name == "root":
            return task["parent_task_id"] is None
        if name == "parent":
            return task["parent_task_id"] == params[0]
        if name == "archived":
            return task["archived"] is True
        if name == "active":
            return task["archived"] is False
        if name == "assignee":
            return params[0] in self.assignees.get(task_id, [])
        if name == "project":
            return task["project_id"] == params[0]
        if name == "statuses":
            return task["status_id"] in params[0]
        if name == "priorities":
            return task["priority_id"] in params[0]
        if name == "labels":
            return any(label in params[0] for label in self.task_labels.get(task_id, []))
        if name == "members":
            return any(member in params[0] for member in self.assignees.get(task_id, []))
        if name == "projects":
            return task["project_id"] in params[0]
        raise ValueError(f"Unknown predicate: {name}")

    def _sort_value(self, task: dict[str, Any], field: str) -> Any:
        if field == "priority_value":
            priority = self.priorities.get(task["priority_id"] or "")
            return priority["value"] if priority else None
        return task.get(field)

    def _category(self, task: dict[str, Any]) -> StatusCategory | None:
        status = self.statuses.get(task["status_id"] or "")
        if status is None or status["project_id"] != task["project_id"] or status["category"] is None:
            return None
        return StatusCategory.of(status["category"])

    def _is_done(self, task: dict[str, Any]) -> bool:
        category = self._category(task)
        return category is not None and category.is_done

    def _children(self, task_id: str) -> list[dict[str, Any]]:
        return [t for t in self.tasks.values() if t["parent_task_id"] == task_id]

    def _task_key(self, task: dict[str, Any]) -> str:
        return f"{self.projects[task['project_id']]['key']}-{task['task_no']}"

    def _row(
        self,
        task: dict[str, Any],
        *,
        user_id: str | None,
        custom_columns: bool,
        statuses: bool,
    ) -> dict[str, Any]:
        task_id = task["id"]
        category = self._category(task)
        status = self.statuses.get(task["status_id"] or "")
        color, dark = CATEGORY_COLORS.get((status or {}).get("category") or "", (None, None))
        phase = self.phases.get(task["phase_id"] or "")
        priority = self.priorities.get(task["priority_id"] or "")
        parent = self.tasks.get(task["parent_task_id"] or "")
        children = self._children(task_id)
        is_done = category is not None and category.is_done

        row: dict[str, Any] = {
            "id": task_id,
            "name": task["name"],
            "task_key": self._task_key(task),
            "project_name": self.projects[task["project_id"]]["name"],
            "project_id": task["project_id"],
            "parent_task_id": task["parent_task_id"],
            "parent_task_name": parent["name"] if parent else None,
            "sub_tasks_count": len(children),
            "status": task["status_id"],
            "archived": task["archived"],
            "description": task["description"],
            "sort_order": task["sort_order"],
            "phase_id": task["phase_id"],
            "phase_name": phase["name"] if phase else None,
            "phase_color_code": phase["color_code"] if phase else None,
            "has_subscribers": bool(self.subscribers.get(task_id)),
            "has_dependencies": any(source == task_id for source, _ in self.dependencies),
            "timer_start_time": self.timers.get((task_id, user_id)) if user_id else None,
            "status_color": color,
            "status_color_dark": dark,
            "status_category": category.model_dump() if category else {},
            "comments_count": 0,
            "attachments_count": 0,
            "parent_task_completed": 1 if is_done else 0,
            "assignees": [dict(self.members[m]) for m in self.assignees.get(task_id, [])],
            "completed_sub_tasks": sum(1 for child in children if self._is_done(child)),
            "labels": [
                {"id": label_id, "name": self.labels[label_id]["name"], "color_code": self.labels[label_id]["color_code"]}
                for label_id in self.task_labels.get(task_id, [])
            ],
            "is_complete": is_done,
            "reporter": None,
            "priority": task["priority_id"],
            "priority_value": priority["value"] if priority else None,
            "total_minutes": task["total_minutes"],
            "total_minutes_spent": 0,
            "created_at": task["created_at"],
            "updated_at": task["updated_at"],
            "completed_at": None,
            "start_date": None,
            "end_date": None,
            "billable": None,
            "schedule_id": None,
        }
        if custom_columns:
            row["custom_column_values"] = {
                self.custom_columns[column_id]["key"]: _column_value(value)
                for (owner, column_id), value in self.column_values.items()
                if owner == task_id and _column_value(value) is not None
            }
        if statuses:
            row["statuses"] = [
                {
                    "id": s["id"],
                    "name": s["name"],
                    "color_code": CATEGORY_COLORS.get(s["category"] or "", (None, None))[0],
                }
                for s in sorted(self.statuses.values(), key=lambda s: s["name"])
                if s["project_id"] == task["project_id"] and s["category"] is not None
            ]
        return row


def _sort_key(value: Any) -> tuple[bool, Any]:
    # NULLs sort last ascending and first descending, as in Postgres.
    return (value is None, value if value is not None else 0)


def _column_value(value: CustomColumnValue) -> Any:
    for slot in (
        value.text_value,
        value.number_value,
        value.boolean_value,
        value.date_value,
        value.json_value,
    ):
        if slot is not None:
            return slot
    return None
