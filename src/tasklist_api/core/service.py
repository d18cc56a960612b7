"""Task list service: the operations exposed to the HTTP layer.

Flow for a grouped list:
1) compose predicates and plan one query,
2) fetch the flat, ordered task list,
3) partition it into group shells for the requested dimension,
4) compute progress ratios per group.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from tasklist_api.core.dependency_gate import can_transition
from tasklist_api.core.grouping import partition
from tasklist_api.core.models import (
    UNMAPPED,
    CustomColumnValue,
    FilterCriteria,
    GroupDimension,
    ReparentContext,
    Subscriber,
    TaskCompleteRatio,
    TaskCount,
    TaskGroup,
    TaskLabel,
    TaskRecord,
    TaskSearchHit,
)
from tasklist_api.core.progress import aggregate
from tasklist_api.core.query_planner import plan_task_query
from tasklist_api.core.view_model import color_for_name, decorate_task
from tasklist_api.errors import InvalidInputError, NotFoundError, StoreError
from tasklist_api.storage.base import TaskStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 15


class TaskListService:
    """Stateless across requests; every call reads what the store has committed."""

    def __init__(self, store: TaskStore, *, search_limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        self.store = store
        self.search_limit = search_limit

    # ---- listing ----

    async def list_grouped(
        self,
        project_id: str,
        criteria: FilterCriteria,
        *,
        user_id: str | None = None,
        team_id: str | None = None,
    ) -> list[TaskGroup]:
        _require(project_id, "project id")
        flat_criteria = criteria.model_copy(update={"count_only": False})
        tasks = await self._fetch_tasks(project_id, flat_criteria, user_id=user_id)
        shell_rows = await self.store.list_group_shells(
            criteria.group,
            project_id,
            team_id=team_id,
        )
        shells = [TaskGroup.from_shell(row) for row in shell_rows if row.get("id")]
        groups = partition(tasks, criteria.group, shells)
        for group in groups.values():
            aggregate(group)

        logger.info(
            "task_list event=grouped project_id=%s group=%s tasks=%s groups=%s",
            project_id,
            criteria.group.value,
            len(tasks),
            len(groups),
        )
        return list(groups.values())

    async def list_flat(
        self,
        scope_id: str,
        criteria: FilterCriteria,
        *,
        user_id: str | None = None,
    ) -> list[TaskRecord] | TaskCount:
        """Flat decorated task list, or a single count row in count-only mode."""
        _require(scope_id, "scope id")
        if criteria.count_only:
            plan = plan_task_query(criteria, scope_id=scope_id, user_id=user_id)
            total = await self.store.fetch_count(plan)
            logger.info("task_list event=counted scope_id=%s total=%s", scope_id, total)
            return TaskCount(total=total)

        tasks = await self._fetch_tasks(scope_id, criteria, user_id=user_id)
        logger.info("task_list event=listed scope_id=%s tasks=%s", scope_id, len(tasks))
        return tasks

    async def _fetch_tasks(
        self,
        scope_id: str,
        criteria: FilterCriteria,
        *,
        user_id: str | None,
    ) -> list[TaskRecord]:
        plan = plan_task_query(criteria, scope_id=scope_id, user_id=user_id)
        rows = await self.store.fetch_tasks(plan)
        return [decorate_task(TaskRecord.model_validate(row)) for row in rows]

    # ---- dependency gate ----

    async def evaluate_dependency_gate(self, task_id: str, target_status_id: str) -> bool:
        _require(task_id, "task id")
        _require(target_status_id, "status id")
        return await can_transition(self.store, task_id, target_status_id)

    # ---- single task ----

    async def get_task(self, task_id: str, *, user_id: str | None = None) -> TaskRecord:
        _require(task_id, "task id")
        row = await self.store.get_single_task(task_id, user_id=user_id)
        if row is None:
            raise NotFoundError(f"Task {task_id} not found")

        # Decoration reads are independent; one failure cancels the others.
        try:
            async with asyncio.TaskGroup() as group:
                assignees = group.create_task(self.store.get_task_assignees(task_id))
                labels = group.create_task(self.store.get_task_labels(task_id))
                ratio = group.create_task(self.get_task_complete_ratio(task_id))
        except ExceptionGroup as errors:
            raise errors.exceptions[0] from errors

        complete = ratio.result()
        task = TaskRecord.model_validate(
            {**row, "assignees": assignees.result(), "labels": labels.result()}
        )
        task = decorate_task(task)
        if complete is not None and task.sub_tasks_count > 0:
            task = task.model_copy(update={"complete_ratio": complete.ratio})
        if task.status and not task.status_color:
            color = await self._status_color(task.status)
            if color:
                task = task.model_copy(
                    update={
                        "status_color": color.get("color_code"),
                        "status_color_dark": color.get("color_code_dark"),
                    }
                )
        return task

    async def get_task_complete_ratio(self, task_id: str) -> TaskCompleteRatio | None:
        """Completion of a task and its sub-tasks; None when the store helper fails."""
        try:
            info = await self.store.get_task_complete_ratio(task_id)
            return TaskCompleteRatio(
                ratio=int(Decimal(str(info["ratio"])).quantize(Decimal("1"), ROUND_HALF_UP)),
                total_completed=int(info["total_completed"]),
                total_tasks=int(info["total_tasks"]),
            )
        except (StoreError, KeyError, TypeError, ValueError, InvalidOperation):
            logger.warning("task_list event=complete_ratio_failed task_id=%s", task_id, exc_info=True)
            return None

    async def _status_color(self, status_id: str) -> dict[str, Any] | None:
        try:
            return await self.store.get_status_color(status_id)
        except StoreError:
            logger.exception("task_list event=status_color_failed status_id=%s", status_id)
            return None

    # ---- hierarchy ----

    async def reparent(
        self,
        task_id: str,
        new_parent_id: str | None,
        context: ReparentContext,
        *,
        user_id: str | None = None,
    ) -> TaskRecord:
        """Convert a sub-task to a task (`new_parent_id=None`) or a task to a sub-task."""
        _require(task_id, "task id")
        task = await self.store.get_single_task(task_id, user_id=user_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")

        if new_parent_id is None:
            await self.store.move_task(
                task_id,
                project_id=context.project_id,
                parent_task_id=None,
            )
            logger.info("task_list event=converted_to_task task_id=%s", task_id)
            return await self.get_task(task_id, user_id=user_id)

        await self._check_new_parent(task, new_parent_id, user_id=user_id)
        to_group_id = None if context.to_group_id == UNMAPPED else context.to_group_id
        status_id = priority_id = None

        if context.group_by == GroupDimension.STATUS:
            status_id = await self._require_group(context, to_group_id, nullable=False)
        elif context.group_by == GroupDimension.PRIORITY:
            priority_id = await self._require_group(context, to_group_id, nullable=False)
        elif context.group_by == GroupDimension.PHASE:
            await self._require_group(context, to_group_id, nullable=True)
        elif context.group_by == GroupDimension.LABELS:
            raise InvalidInputError("Tasks cannot be moved between label groups")

        await self.store.move_task(
            task_id,
            project_id=context.project_id,
            parent_task_id=new_parent_id,
            status_id=status_id,
            priority_id=priority_id,
        )
        if context.group_by == GroupDimension.PHASE:
            await self.store.set_task_phase(task_id, to_group_id)

        logger.info(
            "task_list event=converted_to_subtask task_id=%s parent_task_id=%s group_by=%s",
            task_id,
            new_parent_id,
            context.group_by,
        )
        return await self.get_task(task_id, user_id=user_id)

    async def _check_new_parent(
        self,
        task: dict[str, Any],
        new_parent_id: str,
        *,
        user_id: str | None,
    ) -> None:
        if new_parent_id == task["id"]:
            raise InvalidInputError("A task cannot be its own parent")
        if int(task.get("sub_tasks_count") or 0) > 0:
            raise InvalidInputError("A task with sub-tasks cannot become a sub-task")
        parent = await self.store.get_single_task(new_parent_id, user_id=user_id)
        if parent is None:
            raise NotFoundError(f"Parent task {new_parent_id} not found")
        if parent.get("parent_task_id"):
            raise InvalidInputError("Sub-tasks cannot have sub-tasks of their own")

    async def _require_group(
        self,
        context: ReparentContext,
        group_id: str | None,
        *,
        nullable: bool,
    ) -> str | None:
        dimension = context.group_by or GroupDimension.STATUS
        if group_id is None:
            if nullable:
                return None
            raise InvalidInputError(f"A target {dimension.value} is required")
        shells = await self.store.list_group_shells(dimension, context.project_id)
        if not any(str(row.get("id")) == group_id for row in shells):
            raise NotFoundError(f"{dimension.value.capitalize()} {group_id} not found")
        return group_id

    # ---- labels and custom columns ----

    async def assign_labels(self, task_id: str, label_ids: list[str]) -> list[TaskLabel]:
        """Toggle each label on the task, one awaited write at a time."""
        _require(task_id, "task id")
        for label_id in label_ids:
            await self.store.toggle_task_label(task_id, label_id)
        labels = await self.store.get_task_labels(task_id)
        logger.info("task_list event=labels_assigned task_id=%s labels=%s", task_id, len(label_ids))
        return [TaskLabel.model_validate(label) for label in labels]

    async def update_custom_column_value(
        self,
        task_id: str,
        *,
        project_id: str,
        column_key: str,
        value: Any,
    ) -> dict[str, Any]:
        if not task_id or not column_key or value is None or not project_id:
            raise InvalidInputError("Missing required parameters")

        column = await self.store.get_custom_column(project_id, column_key)
        if column is None:
            raise NotFoundError("Custom column not found")

        typed = coerce_column_value(column.field_type, value)
        await self.store.upsert_custom_column_value(task_id, column.id, typed)
        return {"task_id": task_id, "column_key": column_key, "value": value}

    # ---- lookups ----

    async def search_tasks(
        self,
        project_id: str,
        text: str,
        *,
        exclude_task_id: str | None = None,
    ) -> list[TaskSearchHit]:
        _require(project_id, "project id")
        if not (text or "").strip():
            return []
        rows = await self.store.search_tasks_by_name(
            project_id,
            exclude_task_id=exclude_task_id,
            text=text.strip(),
            limit=self.search_limit,
        )
        return [TaskSearchHit.model_validate(row) for row in rows]

    async def is_user_assigned(self, task_id: str, *, user_id: str | None, team_id: str | None) -> bool:
        """Whether the caller, as a member of `team_id`, is assigned to the task."""
        _require(task_id, "task id")
        _require(user_id, "user id")
        _require(team_id, "team id")
        return await self.store.is_user_assigned(task_id, user_id, team_id)

    async def get_subscribers(self, task_id: str) -> list[Subscriber]:
        _require(task_id, "task id")
        rows = await self.store.list_subscribers(task_id)
        return [
            Subscriber.model_validate({**row, "color_code": color_for_name(row.get("name"))})
            for row in rows
        ]


def coerce_column_value(field_type: str, value: Any) -> CustomColumnValue:
    """Place `value` into the slot matching the column's field type."""
    try:
        if field_type == "number":
            return CustomColumnValue(number_value=float(str(value)))
        if field_type == "date":
            return CustomColumnValue(date_value=datetime.fromisoformat(str(value)))
        if field_type == "checkbox":
            return CustomColumnValue(boolean_value=bool(value))
        if field_type == "people":
            return CustomColumnValue(json_value=list(value) if isinstance(value, list) else [value])
        return CustomColumnValue(text_value=str(value))
    except (ValueError, ValidationError) as exc:
        raise InvalidInputError(f"Invalid {field_type} value: {value!r}") from exc


def build_criteria(**raw: Any) -> FilterCriteria:
    """Validate raw filter inputs, reporting contradictions as invalid input."""
    try:
        return FilterCriteria.model_validate(raw)
    except ValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise InvalidInputError(messages) from exc


def _require(value: str | None, label: str) -> None:
    if not value:
        raise InvalidInputError(f"Missing {label}")
