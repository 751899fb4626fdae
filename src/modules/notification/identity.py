"""
Identity lookup used to enrich notification text.

User ids arrive already resolved by the authentication layer; this module
only maps them to display names. Lookups are best-effort: a missing name
falls back to a generic label and never fails the operation.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class IdentityLookup(Protocol):
    """Resolves an integer user id to a display name."""

    async def display_name(self, user_id: int) -> Optional[str]:
        ...


class StaticIdentityLookup:
    """In-memory lookup, for tests and single-process deployments."""

    def __init__(self, names: Optional[Mapping[int, str]] = None) -> None:
        self._names: Dict[int, str] = dict(names or {})

    def register(self, user_id: int, name: str) -> None:
        self._names[user_id] = name

    async def display_name(self, user_id: int) -> Optional[str]:
        return self._names.get(user_id)


def fallback_name(user_id: int) -> str:
    return f"User #{user_id}"
