"""
Test data builders that go through the public services, so every row they
create obeys the same rules as production writes.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from src.core.services.container import ServiceContainer


async def make_guild(
    container: ServiceContainer,
    owner_id: int = 1,
    members: Iterable[int] = (),
    name: str = "Study Hall",
    **options: Any,
) -> Dict[str, Any]:
    """Create a guild owned by ``owner_id`` and seat ``members`` via accepted invitations."""
    guild = await container.guilds.create_guild(owner_id, name, **options)
    for user_id in members:
        invitation = await container.guild_invitations.invite(guild["guild_id"], owner_id, invitee_id=user_id)
        await container.guild_invitations.accept(invitation["invitation_id"], user_id)
    return await container.guilds.get_guild(guild["guild_id"])


async def make_party(
    container: ServiceContainer,
    leader_id: int = 1,
    members: Iterable[int] = (),
    name: str = "Night Owls",
    **options: Any,
) -> Dict[str, Any]:
    """Create a party led by ``leader_id`` and seat ``members`` via accepted invitations."""
    party = await container.parties.create_party(leader_id, name, **options)
    for user_id in members:
        invitation = await container.party_invitations.invite(party["party_id"], leader_id, invitee_id=user_id)
        await container.party_invitations.accept(invitation["invitation_id"], user_id)
    return await container.parties.get_party(party["party_id"])


async def make_post(
    container: ServiceContainer,
    guild_id: int,
    author_id: int,
    title: str = "Weekly notes",
    content: str = "Chapter 3 summary",
) -> Dict[str, Any]:
    return await container.guild_posts.create_post(guild_id, author_id, title, content)
