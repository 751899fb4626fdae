"""
Integration tests for MembershipService with both group kinds.

Covers leaving (guild owner guard, succession and dissolution), removal by the
owner, role assignment and leadership transfer.
"""

import pytest

from src.modules.shared.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tests.factories import make_guild, make_party

pytestmark = pytest.mark.integration


class TestGuildMembership:

    async def test_member_leaves(self, container, recorded_events):
        guild = await make_guild(container, members=[2])

        result = await container.guild_members.leave(guild["guild_id"], 2)

        assert result == {
            "group_id": guild["guild_id"],
            "user_id": 2,
            "member_count": 1,
            "successor_id": None,
            "dissolved": False,
        }
        assert "guild.member_left" in [name for name, _ in recorded_events]
        assert await container.guild_members.get_membership(guild["guild_id"], 2) is None

    async def test_owner_cannot_leave_populated_guild(self, container):
        guild = await make_guild(container, members=[2])

        with pytest.raises(ConflictError) as exc_info:
            await container.guild_members.leave(guild["guild_id"], 1)
        assert exc_info.value.details["remaining_members"] == 1

    async def test_sole_owner_leaving_dissolves_guild(self, container, recorded_events):
        guild = await make_guild(container)

        result = await container.guild_members.leave(guild["guild_id"], 1)

        assert result["member_count"] == 0
        assert result["dissolved"] is True
        dissolved = await container.guilds.get_guild(guild["guild_id"])
        assert dissolved["dissolved"] is True
        assert dissolved["dissolved_at"] is not None
        assert ("guild.dissolved", {
            "group_id": guild["guild_id"], "revoked_invitations": 0, "cancelled_requests": 0
        }) in recorded_events

    async def test_dissolved_guild_closes_pending_invitations_and_requests(self, container, recorded_events):
        guild = await make_guild(container, requires_approval=True)
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
        await container.guild_join_requests.request(guild["guild_id"], 3)

        await container.guild_members.leave(guild["guild_id"], 1)

        assert await container.guild_invitations.list_pending_for_user(2) == []
        assert [r["status"] for r in await container.guild_join_requests.list_mine(3)] == ["cancelled"]
        assert ("guild.dissolved", {
            "group_id": guild["guild_id"], "revoked_invitations": 1, "cancelled_requests": 1
        }) in recorded_events

        # Nobody can be seated in the ownerless guild afterwards
        with pytest.raises(ConflictError):
            await container.guild_invitations.accept(invitation["invitation_id"], 2)
        assert await container.guild_members.list_members(guild["guild_id"]) == []

    async def test_join_request_after_dissolution(self, container):
        guild = await make_guild(container, is_public=True, requires_approval=False)
        await container.guild_members.leave(guild["guild_id"], 1)

        with pytest.raises(ConflictError):
            await container.guild_join_requests.request(guild["guild_id"], 2)
        assert await container.guild_members.get_membership(guild["guild_id"], 2) is None
        assert (await container.guilds.get_guild(guild["guild_id"]))["member_count"] == 0

    async def test_left_member_can_rejoin(self, container):
        guild = await make_guild(container, members=[2])
        await container.guild_members.leave(guild["guild_id"], 2)

        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
        rejoined = await container.guild_invitations.accept(invitation["invitation_id"], 2)

        assert rejoined["member_count"] == 2
        assert rejoined["role"] == "member"

    async def test_non_member_cannot_leave(self, container):
        guild = await make_guild(container)

        with pytest.raises(NotFoundError):
            await container.guild_members.leave(guild["guild_id"], 5)

    async def test_transfer_ownership(self, container):
        guild = await make_guild(container, members=[2])

        result = await container.guild_members.transfer_leadership(guild["guild_id"], 1, 2)

        assert result["new_owner_id"] == 2
        assert result["former_owner_role"] == "admin"
        members = {m["user_id"]: m["role"] for m in await container.guild_members.list_members(guild["guild_id"])}
        assert members == {1: "admin", 2: "owner"}
        assert (await container.notifications.get_latest(2, 1))[0]["title"] == "You now own Study Hall"

        # The former owner may now leave
        await container.guild_members.leave(guild["guild_id"], 1)

    async def test_only_owner_transfers(self, container):
        guild = await make_guild(container, members=[2, 3])
        await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")

        with pytest.raises(ForbiddenError):
            await container.guild_members.transfer_leadership(guild["guild_id"], 2, 3)

    async def test_transfer_to_self(self, container):
        guild = await make_guild(container)

        with pytest.raises(ValidationError):
            await container.guild_members.transfer_leadership(guild["guild_id"], 1, 1)

    async def test_assign_role(self, container):
        guild = await make_guild(container, members=[2])

        result = await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")

        assert result["role"] == "admin"
        assert result["previous_role"] == "member"
        assert (await container.notifications.get_latest(2, 1))[0]["message"] == "Your role in Study Hall is now admin."

    async def test_owner_role_is_not_assignable(self, container):
        guild = await make_guild(container, members=[2])

        with pytest.raises(ValidationError):
            await container.guild_members.assign_role(guild["guild_id"], 1, 2, "owner")
        with pytest.raises(ValidationError):
            await container.guild_members.assign_role(guild["guild_id"], 1, 2, "wizard")

    async def test_owner_removes_member(self, container, recorded_events):
        guild = await make_guild(container, members=[2, 3])

        result = await container.guild_members.remove_member(guild["guild_id"], 1, 2)

        assert result["status"] == "removed"
        assert result["member_count"] == 2
        assert result["removed_by"] == 1
        assert await container.guild_members.get_membership(guild["guild_id"], 2) is None
        latest = (await container.notifications.get_latest(2, 1))[0]
        assert latest["title"] == "Removed from Study Hall"
        assert latest["message"] == "Ada removed you from the guild Study Hall."
        assert ("guild.member_removed", {
            "group_id": guild["guild_id"], "user_id": 2, "removed_by": 1, "member_count": 2
        }) in recorded_events

    async def test_removed_member_can_be_invited_back(self, container):
        guild = await make_guild(container, members=[2])
        await container.guild_members.remove_member(guild["guild_id"], 1, 2)

        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
        rejoined = await container.guild_invitations.accept(invitation["invitation_id"], 2)

        assert rejoined["member_count"] == 2
        assert (await container.guild_members.get_membership(guild["guild_id"], 2))["status"] == "active"

    async def test_admin_cannot_remove_members(self, container):
        guild = await make_guild(container, members=[2, 3])
        await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")

        with pytest.raises(ForbiddenError):
            await container.guild_members.remove_member(guild["guild_id"], 2, 3)
        assert (await container.guilds.get_guild(guild["guild_id"]))["member_count"] == 3

    async def test_owner_is_not_removable(self, container, community_config):
        guild = await make_guild(container, members=[2, 3])
        await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")
        await community_config.set("community.permissions.guild.admin", ["remove_member", "leave"])

        with pytest.raises(ForbiddenError) as exc_info:
            await container.guild_members.remove_member(guild["guild_id"], 2, 1)
        assert exc_info.value.reason == "the owner cannot be removed"

        # The granted right still works on plain members
        result = await container.guild_members.remove_member(guild["guild_id"], 2, 3)
        assert result["member_count"] == 2

    async def test_remove_member_guards(self, container):
        guild = await make_guild(container, members=[2])

        with pytest.raises(ValidationError):
            await container.guild_members.remove_member(guild["guild_id"], 1, 1)
        with pytest.raises(NotFoundError):
            await container.guild_members.remove_member(guild["guild_id"], 1, 3)
        with pytest.raises(ForbiddenError):
            await container.guild_members.remove_member(guild["guild_id"], 2, 1)

    async def test_list_members_owner_first(self, container):
        guild = await make_guild(container, members=[2, 3])
        await container.guild_members.assign_role(guild["guild_id"], 1, 3, "admin")

        roles = [(m["user_id"], m["role"]) for m in await container.guild_members.list_members(guild["guild_id"])]

        assert roles == [(1, "owner"), (3, "admin"), (2, "member")]


class TestPartyMembership:

    async def test_leader_leaving_hands_over(self, container, recorded_events):
        party = await make_party(container, members=[2, 3])

        result = await container.party_members.leave(party["party_id"], 1)

        assert result["successor_id"] == 2
        assert result["dissolved"] is False
        assert (await container.party_members.get_membership(party["party_id"], 2))["role"] == "leader"
        assert ("party.leadership_transferred", {
            "group_id": party["party_id"], "previous_owner_id": 1, "new_owner_id": 2
        }) in recorded_events

    async def test_last_member_dissolves_party(self, container, recorded_events):
        party = await make_party(container)

        result = await container.party_members.leave(party["party_id"], 1)

        assert result["dissolved"] is True
        assert (await container.parties.get_party(party["party_id"]))["dissolved"] is True
        assert ("party.dissolved", {
            "group_id": party["party_id"], "revoked_invitations": 0, "cancelled_requests": 0
        }) in recorded_events

    async def test_users_can_join_several_parties(self, container):
        await make_party(container, leader_id=1, members=[3], name="Morning")
        evening = await make_party(container, leader_id=2, members=[3], name="Evening")

        assert evening["member_count"] == 2

    async def test_leader_transfer_keeps_old_leader_as_member(self, container):
        party = await make_party(container, members=[2])

        result = await container.party_members.transfer_leadership(party["party_id"], 1, 2)

        assert result["former_owner_role"] == "member"
        assert (await container.party_members.get_membership(party["party_id"], 1))["role"] == "member"

    async def test_leader_removes_member(self, container):
        party = await make_party(container, members=[2, 3])

        result = await container.party_members.remove_member(party["party_id"], 1, 3)

        assert result["member_count"] == 2
        assert (await container.notifications.get_latest(3, 1))[0]["message"] == (
            "Ada removed you from the study party Night Owls."
        )
        with pytest.raises(ForbiddenError):
            await container.party_members.remove_member(party["party_id"], 2, 1)
