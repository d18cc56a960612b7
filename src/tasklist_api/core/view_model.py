"""Derived view fields attached to task records before they leave the service."""

from __future__ import annotations

from tasklist_api.core.models import TaskRecord
from tasklist_api.core.progress import ratio

AVATAR_COLORS = (
    "#154c9b",
    "#3b7ad4",
    "#70a6f3",
    "#7781ca",
    "#9877ca",
    "#c178c9",
    "#ee87c5",
    "#ca7881",
    "#75c9c0",
    "#75c997",
    "#80ca79",
    "#aacb78",
    "#cbbc78",
    "#cb9878",
    "#bb774c",
    "#905b39",
    "#903737",
    "#bf4949",
    "#f37070",
    "#ff9c3c",
    "#fbc84c",
    "#cbc8a1",
    "#a9a9a9",
    "#767676",
)


def color_for_name(name: str | None) -> str:
    """Stable avatar color for a display name."""
    if not name:
        return AVATAR_COLORS[-1]
    return AVATAR_COLORS[ord(name[0].upper()) % len(AVATAR_COLORS)]


def format_minutes(minutes: int | None) -> str:
    total = max(int(minutes or 0), 0)
    return f"{total // 60}h {total % 60}m"


def decorate_task(task: TaskRecord) -> TaskRecord:
    """Return a copy of `task` with its derived view fields filled in."""
    if task.sub_tasks_count > 0:
        complete_ratio = ratio(task.completed_sub_tasks, task.sub_tasks_count)
    else:
        complete_ratio = 100 if task.is_complete else 0

    assignees = [
        assignee.model_copy(update={"color_code": assignee.color_code or color_for_name(assignee.name)})
        for assignee in task.assignees
    ]
    return task.model_copy(
        update={
            "is_sub_task": task.parent_task_id is not None,
            "complete_ratio": complete_ratio,
            "assignees": assignees,
            "names": [assignee.name for assignee in assignees if assignee.name],
            "total_time_string": format_minutes(task.total_minutes),
            "time_spent_string": format_minutes(task.total_minutes_spent),
        }
    )
