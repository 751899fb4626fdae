"""
Guildhall Shared Module

Purpose
-------
Provides domain-level foundations for all community modules:
- Domain exceptions and error handling
- Base service and repository patterns

Architecture
------------
- BaseService: Foundation for service classes (logging, config, events)
- BaseRepository: Type-safe database access, compare-and-set, guarded counters
- Domain exceptions: NotFound / Forbidden / Conflict / Gone / Validation

Usage
-----
    from src.modules.shared import (
        BaseService,
        BaseRepository,
        ConflictError,
        ForbiddenError,
    )
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    CommunityDomainException,
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    ValidationError,
    get_error_severity,
    should_alert,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "CommunityDomainException",
    "ConflictError",
    "ForbiddenError",
    "GoneError",
    "NotFoundError",
    "ValidationError",
    "get_error_severity",
    "should_alert",
]
