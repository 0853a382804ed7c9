"""Constants for task API routes."""

TASK_NOT_FOUND_DETAIL = "Task not found"
