# src/todo_sync/core/errors.py

from __future__ import annotations


class TodoSyncError(RuntimeError):
    """Base class for errors raised by the task list core."""


class NotAuthenticatedError(TodoSyncError):
    """An operation needs a signed-in principal and there is none."""


class RemoteStoreError(TodoSyncError):
    """A remote store call failed; the optimistic change has been rolled back."""


class TaskNotFoundError(RemoteStoreError):
    """The task does not exist or is not visible to the current principal."""
