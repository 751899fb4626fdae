"""
Integration tests for NotificationService read state, deletion and paging.
"""

import pytest

from src.modules.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from tests.factories import make_guild

pytestmark = pytest.mark.integration


async def _inbox(container, user_id):
    return [n["notification_id"] for n in await container.notifications.get_latest(user_id, 100)]


@pytest.fixture
async def invited(container):
    """User 2 holds three invitation notifications, user 3 holds one."""
    guild = await make_guild(container)
    for _ in range(3):
        await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)
    await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=3)
    return guild


class TestReadState:

    async def test_mark_read(self, container, invited):
        notification_id = (await _inbox(container, 2))[0]

        result = await container.notifications.mark_read(notification_id, 2)
        again = await container.notifications.mark_read(notification_id, 2)

        assert result["is_read"] is True
        assert result["read_at"] is not None
        assert again["read_at"] == result["read_at"]
        assert await container.notifications.count_unread(2) == 2

    async def test_only_recipient_marks(self, container, invited):
        notification_id = (await _inbox(container, 2))[0]

        with pytest.raises(ForbiddenError):
            await container.notifications.mark_read(notification_id, 3)
        with pytest.raises(NotFoundError):
            await container.notifications.mark_read(notification_id + 1000, 2)

    async def test_mark_all_read_twice(self, container, invited):
        assert await container.notifications.mark_all_read(2) == 3
        assert await container.notifications.mark_all_read(2) == 0
        assert await container.notifications.count_unread(2) == 0
        # Other users are untouched
        assert await container.notifications.count_unread(3) == 1


class TestDeleteBatch:

    async def test_deletes_own_notifications(self, container, invited):
        ids = await _inbox(container, 2)

        deleted = await container.notifications.delete_batch([ids[0], ids[1], ids[0]], 2)

        assert deleted == 2
        assert await _inbox(container, 2) == [ids[2]]

    async def test_foreign_id_fails_whole_batch(self, container, invited):
        own = await _inbox(container, 2)
        foreign = await _inbox(container, 3)

        with pytest.raises(ForbiddenError) as exc_info:
            await container.notifications.delete_batch([own[0], foreign[0]], 2)

        assert exc_info.value.details["notification_id"] == foreign[0]
        assert await _inbox(container, 2) == own

    async def test_missing_id_fails_whole_batch(self, container, invited):
        own = await _inbox(container, 2)

        with pytest.raises(NotFoundError):
            await container.notifications.delete_batch([own[0], 99_999], 2)
        assert len(await _inbox(container, 2)) == 3

    async def test_empty_batch(self, container):
        assert await container.notifications.delete_batch([], 2) == 0

    async def test_invalid_ids(self, container):
        with pytest.raises(ValidationError):
            await container.notifications.delete_batch(["x"], 2)


class TestPaging:

    async def test_newest_first_and_clamped(self, container, invited):
        ids = await _inbox(container, 2)

        assert ids == sorted(ids, reverse=True)
        assert len(await container.notifications.get_latest(2, 1)) == 1
        assert len(await container.notifications.get_latest(2, 0)) == 3
        assert len(await container.notifications.get_latest(2, -5)) == 3
        assert len(await container.notifications.get_latest(2, 500)) == 3

    async def test_created_event_follows_commit(self, container, recorded_events):
        guild = await make_guild(container)

        await container.guild_invitations.invite(guild["guild_id"], 1, invitee_id=2)

        names = [name for name, _ in recorded_events]
        assert names.index("guild.invitation_created") < names.index("notification.created")
        created = dict(recorded_events)["notification.created"]
        assert created["recipient_id"] == 2
        assert created["type"] == "guild"
