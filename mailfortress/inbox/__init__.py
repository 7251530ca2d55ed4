"""Application state store and batch orchestration."""
