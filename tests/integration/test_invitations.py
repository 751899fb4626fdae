"""
Integration Tests for InvitationService
=======================================

Purpose
-------
Run the invitation engine for guilds and parties against a real SQLite
database.

Test Coverage
-------------
- Inviting by id and by e-mail, superseding older pending invitations
- Accept/decline guard order and lazy expiry
- Member cap under concurrent accepts, accept racing decline
- Revocation, sweeps and e-mail claiming
"""

import asyncio
from datetime import timedelta

import pytest

from src.modules.shared.exceptions import (
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    ValidationError,
)
from tests.factories import make_guild, make_party

pytestmark = pytest.mark.integration


def _days_later(service, days):
    return service.now() + timedelta(days=days)


class TestInvite:

    async def test_owner_invites_member(self, container, recorded_events):
        # Arrange
        guild = await make_guild(container)

        # Act
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2, message="Join us")

        # Assert
        assert invitation["status"] == "pending"
        assert invitation["group_name"] == "Study Hall"
        assert invitation["superseded_invitation_id"] is None
        assert ("guild.invitation_created", {
            "invitation_id": invitation["invitation_id"],
            "group_id": guild["guild_id"],
            "inviter_id": 1,
            "invitee_id": 2,
            "superseded_invitation_id": None,
        }) in recorded_events

        notifications = await container.notifications.get_latest(2)
        assert len(notifications) == 1
        assert notifications[0]["type"] == "guild"
        assert notifications[0]["message"] == "Ada invited you to join the guild Study Hall."
        assert notifications[0]["payload"]["invitation_id"] == invitation["invitation_id"]

    async def test_new_invitation_supersedes_pending_one(self, container):
        guild = await make_guild(container)
        first = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        second = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        assert second["superseded_invitation_id"] == first["invitation_id"]
        pending = await container.guild_invitations.list_pending_for_user(2)
        assert [inv["invitation_id"] for inv in pending] == [second["invitation_id"]]

        with pytest.raises(ConflictError) as exc_info:
            await container.guild_invitations.accept(first["invitation_id"], 2)
        assert exc_info.value.details["status"] == "revoked"

    async def test_member_role_cannot_invite(self, container):
        guild = await make_guild(container, members=[2])

        with pytest.raises(ForbiddenError):
            await container.guild_invitations.invite(guild["guild_id"], 2, invitee_id=3)

    async def test_outsider_cannot_invite(self, container):
        guild = await make_guild(container)

        with pytest.raises(ForbiddenError) as exc_info:
            await container.guild_invitations.invite(guild["guild_id"], 9, invitee_id=3)
        assert exc_info.value.reason == "not an active member"

    async def test_active_member_cannot_be_invited(self, container):
        guild = await make_guild(container, members=[2])

        with pytest.raises(ConflictError):
            await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

    async def test_unknown_group(self, container):
        with pytest.raises(NotFoundError):
            await container.guild_invitations.invite(404, 1, invitee_id=2)

    @pytest.mark.parametrize(
        "kwargs",
        [{}, {"invitee_id": 2, "invitee_email": "grace@example.org"}, {"invitee_id": 1}, {"invitee_email": "nope"}],
    )
    async def test_invitee_validation(self, container, kwargs):
        guild = await make_guild(container)

        with pytest.raises(ValidationError):
            await container.guild_invitations.invite(guild["guild_id"], 1, **kwargs)

    async def test_expiry_must_be_in_the_future(self, container):
        guild = await make_guild(container)
        service = container.guild_invitations

        with pytest.raises(ValidationError):
            await service.invite(guild["guild_id"], 1, invitee_id=2, expires_at=_days_later(service, -1))

    async def test_default_expiry_comes_from_config(self, container):
        guild = await make_guild(container)
        service = container.guild_invitations

        invitation = await service.invite(guild["guild_id"], 1, invitee_id=2)

        delta = invitation["expires_at"] - invitation["created_at"]
        assert timedelta(days=6, hours=23) < delta <= timedelta(days=7, seconds=5)


class TestAnswer:

    async def test_accept_joins_with_default_role(self, container, recorded_events):
        guild = await make_guild(container)
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        result = await container.guild_invitations.accept(invitation["invitation_id"], 2)

        assert result["status"] == "accepted"
        assert result["role"] == "member"
        assert result["member_count"] == 2
        membership = await container.guild_members.get_membership(guild["guild_id"], 2)
        assert membership["role"] == "member"
        assert "guild.invitation_accepted" in [name for name, _ in recorded_events]

        inviter_inbox = await container.notifications.get_latest(1)
        assert inviter_inbox[0]["title"] == "Invitation accepted"

    async def test_guard_order(self, container):
        guild = await make_guild(container)
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
        invitation_id = invitation["invitation_id"]

        with pytest.raises(NotFoundError):
            await container.guild_invitations.accept(invitation_id + 100, 2)

        with pytest.raises(ForbiddenError):
            await container.guild_invitations.accept(invitation_id, 3)

        await container.guild_invitations.decline(invitation_id, 2)

        # Invitee is checked before status
        with pytest.raises(ForbiddenError):
            await container.guild_invitations.accept(invitation_id, 3)
        with pytest.raises(ConflictError):
            await container.guild_invitations.accept(invitation_id, 2)

    async def test_expired_invitation_is_gone_and_persisted(self, container, mocker):
        guild = await make_guild(container)
        service = container.guild_invitations
        invitation = await service.invite(guild["guild_id"], 1, invitee_id=2)

        mocker.patch.object(service, "now", return_value=_days_later(service, 8))
        with pytest.raises(GoneError) as exc_info:
            await service.accept(invitation["invitation_id"], 2)
        assert exc_info.value.status_hint == 410

        mocker.stopall()
        with pytest.raises(ConflictError) as exc_info:
            await service.accept(invitation["invitation_id"], 2)
        assert exc_info.value.details["status"] == "expired"
        assert await container.guild_members.get_membership(guild["guild_id"], 2) is None

    async def test_expired_decline_is_gone(self, container, mocker):
        party = await make_party(container)
        service = container.party_invitations
        invitation = await service.invite(party["party_id"], 1, invitee_id=2)

        mocker.patch.object(service, "now", return_value=_days_later(service, 30))

        with pytest.raises(GoneError):
            await service.decline(invitation["invitation_id"], 2)

    async def test_decline_leaves_membership_untouched(self, container):
        guild = await make_guild(container)
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        result = await container.guild_invitations.decline(invitation["invitation_id"], 2)

        assert result["status"] == "declined"
        assert (await container.guilds.get_guild(guild["guild_id"]))["member_count"] == 1
        assert (await container.notifications.get_latest(1))[0]["title"] == "Invitation declined"

    async def test_guild_membership_is_exclusive(self, container):
        await make_guild(container, owner_id=1, name="First Guild")
        second = await make_guild(container, owner_id=3, name="Second Guild")
        invitation = await container.guild_invitations.invite(second["guild_id"], 3, invitee_id=1)

        with pytest.raises(ConflictError):
            await container.guild_invitations.accept(invitation["invitation_id"], 1)

    async def test_concurrent_accepts_respect_member_cap(self, container):
        # Arrange: owner holds one of two seats
        guild = await make_guild(container, max_members=2)
        first = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
        second = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=3)

        # Act
        results = await asyncio.gather(
            container.guild_invitations.accept(first["invitation_id"], 2),
            container.guild_invitations.accept(second["invitation_id"], 3),
            return_exceptions=True,
        )

        # Assert
        successes = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert (await container.guilds.get_guild(guild["guild_id"]))["member_count"] == 2
        assert len(await container.guild_members.list_members(guild["guild_id"])) == 2

        # The loser's invitation stays pending: its transaction rolled back
        loser = 3 if successes[0]["invitee_id"] == 2 else 2
        assert len(await container.guild_invitations.list_pending_for_user(loser)) == 1

    async def test_concurrent_accept_and_decline(self, container):
        guild = await make_guild(container)
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        results = await asyncio.gather(
            container.guild_invitations.accept(invitation["invitation_id"], 2),
            container.guild_invitations.decline(invitation["invitation_id"], 2),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1

        # Membership matches whichever response won
        accepted = isinstance(results[0], dict)
        member_count = (await container.guilds.get_guild(guild["guild_id"]))["member_count"]
        assert member_count == (2 if accepted else 1)
        assert (await container.guild_members.get_membership(guild["guild_id"], 2) is not None) is accepted
        assert await container.guild_invitations.list_pending_for_user(2) == []


class TestRevokeAndSweep:

    async def test_inviter_revokes(self, container):
        party = await make_party(container)
        invitation = await container.party_invitations.invite(party["party_id"], 1, invitee_id=2)

        result = await container.party_invitations.revoke(invitation["invitation_id"], 1)

        assert result["status"] == "revoked"
        with pytest.raises(ConflictError):
            await container.party_invitations.accept(invitation["invitation_id"], 2)

    async def test_plain_member_cannot_revoke_others_invitations(self, container):
        guild = await make_guild(container, members=[2])
        invitation = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=3)

        with pytest.raises(ForbiddenError):
            await container.guild_invitations.revoke(invitation["invitation_id"], 2)

    async def test_list_pending_for_group_requires_invite_right(self, container):
        guild = await make_guild(container, members=[2])
        await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=3)

        pending = await container.guild_invitations.list_pending_for_group(guild["guild_id"], 1)
        assert [inv["invitee_id"] for inv in pending] == [3]

        with pytest.raises(ForbiddenError):
            await container.guild_invitations.list_pending_for_group(guild["guild_id"], 2)

    async def test_expire_overdue(self, container, mocker, recorded_events):
        party = await make_party(container)
        service = container.party_invitations
        await service.invite(party["party_id"], 1, invitee_id=2)
        await service.invite(party["party_id"], 1, invitee_id=3)

        mocker.patch.object(service, "now", return_value=_days_later(service, 8))
        expired = await service.expire_overdue()

        assert expired == 2
        assert ("party.invitations_expired", {"expired_count": 2}) in recorded_events
        assert await service.list_pending_for_user(2) == []

    async def test_dissolved_party_rejects_invitations(self, container):
        party = await make_party(container)
        await container.party_members.leave(party["party_id"], 1)

        with pytest.raises(ConflictError):
            await container.party_invitations.invite(party["party_id"], 1, invitee_id=2)


class TestEmailInvitations:

    async def test_claim_binds_invitation_to_new_user(self, container):
        guild = await make_guild(container)
        sent = await container.guild_invitations.invite(guild["guild_id"], 1, invitee_email="Grace@Example.org")
        assert sent["invitee_email"] == "grace@example.org"
        assert sent["invitee_id"] is None

        claimed = await container.guild_invitations.claim_email_invitations(2, "grace@example.org")

        assert [inv["invitation_id"] for inv in claimed] == [sent["invitation_id"]]
        assert claimed[0]["invitee_id"] == 2
        assert (await container.notifications.get_latest(2))[0]["title"] == "Guild invitation"

        accepted = await container.guild_invitations.accept(sent["invitation_id"], 2)
        assert accepted["member_count"] == 2

    async def test_claim_revokes_redundant_invitation(self, container):
        party = await make_party(container, members=[2])
        sent = await container.party_invitations.invite(party["party_id"], 1, invitee_email="grace@example.org")

        claimed = await container.party_invitations.claim_email_invitations(2, "grace@example.org")

        assert claimed == []
        with pytest.raises(ConflictError):
            await container.party_invitations.revoke(sent["invitation_id"], 1)
