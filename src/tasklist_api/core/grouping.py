"""Grouping engine: partition a flat, ordered task list into named groups."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from tasklist_api.core.models import UNMAPPED, GroupDimension, TaskGroup, TaskRecord


def partition(
    tasks: Sequence[TaskRecord],
    dimension: GroupDimension,
    shells: Iterable[TaskGroup],
) -> dict[str, TaskGroup]:
    """Place every task in exactly one group, keeping the flat order inside each group.

    Shell order is kept. A task whose key has no shell (deleted phase, missing
    phase, unknown status) goes to the `Unmapped` group, which is created only
    when needed and always comes last. Labels are multi-valued per task, so
    label shells are listed but tasks are not partitioned by label; they all
    land in `Unmapped`.
    """
    groups: dict[str, TaskGroup] = {}
    for shell in shells:
        if shell.id and shell.id != UNMAPPED:
            groups[shell.id] = shell.model_copy(update={"tasks": []})

    unmapped: list[TaskRecord] = []
    for index, task in enumerate(tasks):
        indexed = task.model_copy(update={"index": index})
        key = group_key(indexed, dimension)
        group = groups.get(key) if key is not None else None
        if group is None:
            unmapped.append(indexed)
        else:
            group.tasks.append(indexed)

    if unmapped:
        groups[UNMAPPED] = TaskGroup.unmapped().model_copy(update={"tasks": unmapped})
    return groups


def group_key(task: TaskRecord, dimension: GroupDimension) -> str | None:
    if dimension == GroupDimension.STATUS:
        return task.status
    if dimension == GroupDimension.PRIORITY:
        return task.priority
    if dimension == GroupDimension.PHASE:
        return task.phase_id
    return None
