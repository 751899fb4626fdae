"""
Social domain ORM models.

Exports:
- Guild, GuildMember, GuildInvitation, GuildJoinRequest
- GuildPost, GuildPostComment, GuildPostLike
- Party, PartyMember, PartyInvitation, PartyStashItem
"""

from .guild import Guild
from .guild_invitation import GuildInvitation
from .guild_join_request import GuildJoinRequest
from .guild_member import GuildMember
from .guild_post import GuildPost
from .guild_post_comment import GuildPostComment
from .guild_post_like import GuildPostLike
from .party import Party
from .party_invitation import PartyInvitation
from .party_member import PartyMember
from .party_stash_item import PartyStashItem

__all__ = [
    "Guild",
    "GuildMember",
    "GuildInvitation",
    "GuildJoinRequest",
    "GuildPost",
    "GuildPostComment",
    "GuildPostLike",
    "Party",
    "PartyMember",
    "PartyInvitation",
    "PartyStashItem",
]
