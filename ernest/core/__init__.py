"""Core subsystem exports for the export engine."""

__all__ = [
    "event_hub",
    "events",
    "export_jobs",
    "project",
]
