"""Per-group todo/doing/done progress ratios."""

from __future__ import annotations

from tasklist_api.core.models import TaskGroup


def ratio(count: int, total: int) -> int:
    """Percentage of `count` in `total`, half-up rounded; 0 when total is 0."""
    if total <= 0:
        return 0
    return (count * 200 + total) // (total * 2)


def aggregate(group: TaskGroup) -> tuple[int, int, int]:
    """Compute and store the three progress ratios of a group.

    Tasks with no resolvable status category count toward the total only, so
    the three ratios may sum to less than 100.
    """
    total = len(group.tasks)
    todo = doing = done = 0
    for task in group.tasks:
        category = task.status_category
        if category is None:
            continue
        todo += category.is_todo
        doing += category.is_doing
        done += category.is_done

    group.todo_progress = ratio(todo, total)
    group.doing_progress = ratio(doing, total)
    group.done_progress = ratio(done, total)
    return group.todo_progress, group.doing_progress, group.done_progress
