"""Configuration module for RecordKeeper."""

from .settings import (
    AuditSettings,
    DatabaseSettings,
    ObservabilitySettings,
    ReconciliationSettings,
    Settings,
    get_settings,
)

__all__ = [
    "AuditSettings",
    "DatabaseSettings",
    "ObservabilitySettings",
    "ReconciliationSettings",
    "Settings",
    "get_settings",
]
