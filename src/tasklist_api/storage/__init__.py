"""Storage backends for the task list engine."""

from tasklist_api.storage.base import TaskStore
from tasklist_api.storage.memory import InMemoryTaskStore
from tasklist_api.storage.postgres import PostgresTaskStore

__all__ = [
    "InMemoryTaskStore",
    "PostgresTaskStore",
    "TaskStore",
]
