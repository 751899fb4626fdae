"""
Core infrastructure layer for Guildhall.

Purpose
-------
Provide a single, well-structured import surface for the core infrastructure
subsystems:

- Configuration management (Config, ConfigManager)
- Database subsystem (DatabaseService)
- Logging (structured logging, logger factory)
- Infrastructure exceptions

Non-Responsibilities
--------------------
- Implement infra logic (delegated to submodules)
- Business logic
- Any side effects beyond simple re-exports

Feature modules should still import from their own submodules
(``src.core.database.service`` etc.), not from ``src.core`` directly.
"""

from __future__ import annotations

# Config first: logging and database both read it at import time
from src.core.config import Config, ConfigManager
from src.core.database import DatabaseService
from src.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    InfrastructureException,
)
from src.core.logging import get_logger, setup_logging

__all__ = [
    "Config",
    "ConfigManager",
    "DatabaseService",
    "setup_logging",
    "get_logger",
    "InfrastructureException",
    "ConfigurationError",
    "DatabaseError",
    "ErrorSeverity",
]
