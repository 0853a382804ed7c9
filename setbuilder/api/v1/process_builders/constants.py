"""Constants for process builder API routes."""

PROCESS_BUILDER_NOT_FOUND_DETAIL = "Process builder not found"
