"""Dependency gate: may a task move into a given status?

Only direct dependencies are inspected, so dependency cycles cannot cause
unbounded work. Store failures propagate; the gate never answers "allowed"
when it could not decide.
"""

from __future__ import annotations

import logging

from tasklist_api.errors import NotFoundError
from tasklist_api.storage.base import TaskStore

logger = logging.getLogger(__name__)


async def can_transition(store: TaskStore, task_id: str, target_status_id: str) -> bool:
    project_id = await store.get_task_project_id(task_id)
    if project_id is None:
        raise NotFoundError(f"Task {task_id} not found")

    target = await store.get_status_category(target_status_id, project_id)
    if target is None:
        raise NotFoundError(f"Status {target_status_id} not found in project {project_id}")

    # 1) Moving into a non-terminal status is never blocked.
    if not target.is_done:
        return True

    # 2) Any direct dependency outside the done category blocks the move.
    dependencies = await store.list_dependency_categories(task_id)
    blocking = sum(1 for category in dependencies if category is None or not category.is_done)
    if blocking:
        logger.info(
            "dependency_gate event=blocked task_id=%s status_id=%s blocking=%s",
            task_id,
            target_status_id,
            blocking,
        )
        return False

    # 3) Done target with every dependency done (or none at all).
    return True
