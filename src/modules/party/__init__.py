"""
Party Module
============

Business logic for small study parties.

Exports:
- PartyService: Create parties, join public parties
- PartyStashService: Shared stash items (share, update, delete, list)

Invitations and membership (leave, roles, leadership) use the generic
community engines with ``PARTY_ADAPTER``.
"""

from .core_service import PartyService
from .stash_service import PartyStashService

__all__ = [
    "PartyService",
    "PartyStashService",
]
