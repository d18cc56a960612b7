"""Error taxonomy shared by the engine, the stores, and the HTTP layer."""

from __future__ import annotations


class TaskListError(Exception):
    """Base class for errors the API reports to the caller."""

    status_code = 500


class InvalidInputError(TaskListError):
    """Missing identifiers, contradictory filters, or unknown enum values."""

    status_code = 400


class NotFoundError(TaskListError):
    """A referenced task, status, phase, or custom column does not exist."""

    status_code = 404


class StoreError(TaskListError):
    """The task store failed (connectivity, constraint violation). Never retried here."""

    status_code = 500
