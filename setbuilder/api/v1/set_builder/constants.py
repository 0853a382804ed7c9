"""Constants for set builder API routes."""

CONFIG_NOT_FOUND_DETAIL = "Set builder configuration not found"
CONFIG_UNAVAILABLE_DETAIL = "Set builder configuration is temporarily unavailable"
EMPTY_CONFIG_UPDATE_DETAIL = "No configuration fields provided"
