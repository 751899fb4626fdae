"""
Guild Module
============

Business logic for guilds, their join queue and their discussion board.

Exports:
- GuildService: Core guild operations (create, lookup, merit points)
- GuildJoinRequestService: Join requests (request, approve, reject, cancel)
- GuildPostService: Posts, comments, likes and moderation

Invitations and membership (leave, roles, ownership) use the generic
community engines with ``GUILD_ADAPTER``.
"""

from .core_service import GuildService
from .join_request_service import GuildJoinRequestService
from .post_service import GuildPostService

__all__ = [
    "GuildService",
    "GuildJoinRequestService",
    "GuildPostService",
]
