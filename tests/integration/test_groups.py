"""
Integration tests for GuildService and PartyService.
"""

import pytest

from src.modules.shared.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tests.factories import make_guild, make_party

pytestmark = pytest.mark.integration


class TestGuildService:

    async def test_create_guild(self, container, recorded_events):
        guild = await container.guilds.create_guild(1, "  Calculus Club ", description="Limits and beyond")

        assert guild["name"] == "Calculus Club"
        assert guild["member_count"] == 1
        assert guild["max_members"] == 50
        assert guild["merit_points"] == 0
        assert (await container.guild_members.get_membership(guild["guild_id"], 1))["role"] == "owner"
        created = {"guild_id": guild["guild_id"], "name": "Calculus Club", "creator_id": 1}
        assert ("guild.created", created) in recorded_events

    async def test_name_must_be_unique(self, container):
        await container.guilds.create_guild(1, "Calculus Club")

        with pytest.raises(ConflictError):
            await container.guilds.create_guild(2, "Calculus Club")

    async def test_creator_already_in_a_guild(self, container):
        await container.guilds.create_guild(1, "Calculus Club")

        with pytest.raises(ConflictError):
            await container.guilds.create_guild(1, "Algebra Club")

    @pytest.mark.parametrize(
        "kwargs",
        [{"name": "ab"}, {"name": "Valid", "max_members": 1}, {"name": "Valid", "max_members": 501}],
    )
    async def test_validation(self, container, kwargs):
        with pytest.raises(ValidationError):
            await container.guilds.create_guild(1, **kwargs)

    async def test_missing_guild(self, container):
        with pytest.raises(NotFoundError):
            await container.guilds.get_guild(123)

    async def test_merit_points(self, container):
        guild = await container.guilds.create_guild(1, "Calculus Club")

        await container.guilds.award_merit_points(guild["guild_id"], 30)
        result = await container.guilds.award_merit_points(guild["guild_id"], -10)

        assert result == {"guild_id": guild["guild_id"], "points": -10, "merit_points": 20}

        with pytest.raises(ConflictError):
            await container.guilds.award_merit_points(guild["guild_id"], -21)
        assert (await container.guilds.get_guild(guild["guild_id"]))["merit_points"] == 20


class TestGuildSettings:

    async def test_owner_updates_settings(self, container, recorded_events):
        guild = await make_guild(container, members=[2], description="Old notes")

        result = await container.guilds.update_settings(
            guild["guild_id"], 1, name="Study Hall II", description="  ", requires_approval=True, max_members=10
        )

        assert result["changed_fields"] == ["description", "max_members", "name", "requires_approval"]
        assert result["name"] == "Study Hall II"
        assert result["description"] is None
        assert result["requires_approval"] is True
        assert result["is_public"] is True
        assert (await container.guilds.get_guild(guild["guild_id"]))["max_members"] == 10
        assert ("guild.settings_updated", {
            "guild_id": guild["guild_id"],
            "updated_by": 1,
            "changed_fields": ["description", "max_members", "name", "requires_approval"],
        }) in recorded_events

    async def test_unchanged_values_emit_nothing(self, container, recorded_events):
        guild = await make_guild(container)

        result = await container.guilds.update_settings(guild["guild_id"], 1, is_public=True)

        assert result["changed_fields"] == []
        assert "guild.settings_updated" not in [name for name, _ in recorded_events]

    async def test_admin_cannot_update_settings(self, container):
        guild = await make_guild(container, members=[2])
        await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")

        with pytest.raises(ForbiddenError):
            await container.guilds.update_settings(guild["guild_id"], 2, is_public=False)

    async def test_cap_cannot_drop_below_member_count(self, container):
        guild = await make_guild(container, members=[2, 3])

        with pytest.raises(ValidationError) as exc_info:
            await container.guilds.update_settings(guild["guild_id"], 1, max_members=2)
        assert exc_info.value.details["field"] == "max_members"

        result = await container.guilds.update_settings(guild["guild_id"], 1, max_members=3)
        assert result["max_members"] == 3

    async def test_nothing_to_change(self, container):
        guild = await make_guild(container)

        with pytest.raises(ValidationError):
            await container.guilds.update_settings(guild["guild_id"], 1)

    async def test_name_taken_by_another_guild(self, container):
        guild = await make_guild(container, owner_id=1, name="Study Hall")
        await make_guild(container, owner_id=2, name="Calculus Club")

        with pytest.raises(ConflictError):
            await container.guilds.update_settings(guild["guild_id"], 1, name="Calculus Club")

    async def test_dissolved_guild_is_read_only(self, container):
        guild = await make_guild(container)
        await container.guild_members.leave(guild["guild_id"], 1)

        with pytest.raises(ConflictError):
            await container.guilds.update_settings(guild["guild_id"], 1, is_public=False)


class TestPartyService:

    async def test_create_party(self, container):
        party = await container.parties.create_party(1, "Night Owls")

        assert party["member_count"] == 1
        assert party["max_members"] == 6
        assert party["is_public"] is False
        assert party["dissolved"] is False
        assert (await container.party_members.get_membership(party["party_id"], 1))["role"] == "leader"

    async def test_join_public_party_declines_pending_invitations(self, container, recorded_events):
        party = await make_party(container, is_public=True)
        invitation = await container.party_invitations.invite(party["party_id"], 1, invitee_id=2)

        result = await container.parties.join_public_party(party["party_id"], 2)

        assert result["role"] == "member"
        assert result["member_count"] == 2
        assert result["declined_invitations"] == 1
        assert await container.party_invitations.list_pending_for_user(2) == []
        with pytest.raises(ConflictError):
            await container.party_invitations.accept(invitation["invitation_id"], 2)
        assert "party.member_joined" in [name for name, _ in recorded_events]

    async def test_private_party_requires_invitation(self, container):
        party = await make_party(container)

        with pytest.raises(ForbiddenError):
            await container.parties.join_public_party(party["party_id"], 2)

    async def test_full_party(self, container):
        party = await make_party(container, members=[2], is_public=True, max_members=2)

        with pytest.raises(ConflictError):
            await container.parties.join_public_party(party["party_id"], 3)

    async def test_dissolved_party(self, container):
        party = await make_party(container, is_public=True)
        await container.party_members.leave(party["party_id"], 1)

        with pytest.raises(ConflictError):
            await container.parties.join_public_party(party["party_id"], 2)

    async def test_already_member(self, container):
        party = await make_party(container, is_public=True)

        with pytest.raises(ConflictError):
            await container.parties.join_public_party(party["party_id"], 1)
