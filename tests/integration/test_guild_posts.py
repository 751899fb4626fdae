"""
Integration tests for GuildPostService.

Covers authoring, moderation flags, the approval queue, comment edits and
removal, and likes, including the counters kept on each post.
"""

import pytest
from sqlalchemy import func, select, update

from src.core.database.service import DatabaseService
from src.database.models.social.guild_post import GuildPost
from src.database.models.social.guild_post_like import GuildPostLike
from src.modules.shared.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tests.factories import make_guild, make_post

pytestmark = pytest.mark.integration


@pytest.fixture
async def board(container):
    """Guild of owner 1, admin 2 and member 3."""
    guild = await make_guild(container, members=[2, 3])
    await container.guild_members.assign_role(guild["guild_id"], 1, 2, "admin")
    return guild


async def _like_rows(post_id):
    async with DatabaseService.get_session() as session:
        stmt = select(func.count()).select_from(GuildPostLike).where(GuildPostLike.post_id == post_id)
        return (await session.execute(stmt)).scalar_one()


async def _reset_counters(post_id):
    """Zero the stored counters behind the service's back."""
    async with DatabaseService.get_transaction() as session:
        await session.execute(update(GuildPost).where(GuildPost.id == post_id).values(comment_count=0, like_count=0))


class TestAuthoring:

    async def test_member_publishes(self, container, board, recorded_events):
        post = await container.guild_posts.create_post(
            board["guild_id"], 3, "Exam prep", "Flashcards attached", tags=["Biology"], attachments=["https://x/1.pdf"]
        )

        assert post["status"] == "published"
        assert post["tags"] == ["biology"]
        assert post["comment_count"] == 0
        assert ("guild.post_created", {
            "post_id": post["post_id"], "guild_id": board["guild_id"], "author_id": 3, "status": "published"
        }) in recorded_events

    async def test_outsider_cannot_post(self, container, board):
        with pytest.raises(ForbiddenError):
            await make_post(container, board["guild_id"], 9)

    async def test_author_edits(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        edited = await container.guild_posts.edit_post(post["post_id"], 3, title="Exam prep (v2)")

        assert edited["title"] == "Exam prep (v2)"
        assert edited["edited_at"] is not None

    async def test_edit_needs_changes(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        with pytest.raises(ValidationError):
            await container.guild_posts.edit_post(post["post_id"], 3)

    async def test_others_cannot_edit(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        with pytest.raises(ForbiddenError):
            await container.guild_posts.edit_post(post["post_id"], 1, content="owner rewrite")

    async def test_locked_post_blocks_its_author(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        await container.guild_posts.lock_post(post["post_id"], 2)

        with pytest.raises(ForbiddenError) as exc_info:
            await container.guild_posts.edit_post(post["post_id"], 3, content="sneaky edit")
        assert exc_info.value.reason == "resource is locked"

        with pytest.raises(ForbiddenError):
            await container.guild_posts.delete_post(post["post_id"], 3)


class TestModeration:

    async def test_admin_force_deletes_locked_post(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        await container.guild_posts.lock_post(post["post_id"], 1)

        removed = await container.guild_posts.delete_post(post["post_id"], 2, force=True)

        assert removed["status"] == "removed"
        assert removed["moderated_by"] == 2
        assert (await container.notifications.get_latest(3, 1))[0]["title"] == "Post removed"
        with pytest.raises(NotFoundError):
            await container.guild_posts.get_post(post["post_id"], 3)

    async def test_member_cannot_force_delete(self, container, board):
        post = await make_post(container, board["guild_id"], 1)

        with pytest.raises(ForbiddenError):
            await container.guild_posts.delete_post(post["post_id"], 3, force=True)

    async def test_author_deletes_own_post(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        removed = await container.guild_posts.delete_post(post["post_id"], 3)

        assert removed["status"] == "removed"
        assert removed["moderated_by"] is None

    async def test_pinned_posts_come_first(self, container, board):
        older = await make_post(container, board["guild_id"], 3, title="Older")
        newer = await make_post(container, board["guild_id"], 3, title="Newer")

        await container.guild_posts.pin_post(older["post_id"], 2)
        listed = await container.guild_posts.list_posts(board["guild_id"], 3)

        assert [p["post_id"] for p in listed] == [older["post_id"], newer["post_id"]]
        assert listed[0]["is_pinned"] is True

    async def test_flag_toggle_is_idempotent(self, container, board, recorded_events):
        post = await make_post(container, board["guild_id"], 3)

        await container.guild_posts.set_announcement(post["post_id"], 1)
        again = await container.guild_posts.set_announcement(post["post_id"], 1)

        assert again["is_announcement"] is True
        assert [name for name, _ in recorded_events].count("guild.post_announcement_set") == 1

        cleared = await container.guild_posts.unset_announcement(post["post_id"], 1)
        assert cleared["is_announcement"] is False

    async def test_member_cannot_pin(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        with pytest.raises(ForbiddenError):
            await container.guild_posts.pin_post(post["post_id"], 3)


class TestApprovalQueue:

    async def test_pending_post_visibility_and_approval(self, container):
        guild = await make_guild(container, members=[2, 3], requires_approval=True)
        post = await make_post(container, guild["guild_id"], 3)
        assert post["status"] == "pending"

        # Author and reviewers see it; other members do not
        assert await container.guild_posts.get_post(post["post_id"], 3)
        assert [p["post_id"] for p in await container.guild_posts.list_posts(guild["guild_id"], 1)] == [post["post_id"]]
        assert await container.guild_posts.list_posts(guild["guild_id"], 2) == []
        with pytest.raises(NotFoundError):
            await container.guild_posts.get_post(post["post_id"], 2)

        # Pending posts take no comments
        with pytest.raises(ConflictError):
            await container.guild_posts.create_comment(post["post_id"], 1, "Looks good")

        approved = await container.guild_posts.approve_post(post["post_id"], 1)

        assert approved["status"] == "published"
        assert (await container.notifications.get_latest(3, 1))[0]["title"] == "Post approved"
        assert len(await container.guild_posts.list_posts(guild["guild_id"], 2)) == 1

        with pytest.raises(ConflictError):
            await container.guild_posts.reject_post(post["post_id"], 1)

    async def test_reject(self, container):
        guild = await make_guild(container, members=[3], requires_approval=True)
        post = await make_post(container, guild["guild_id"], 3)

        rejected = await container.guild_posts.reject_post(post["post_id"], 1)

        assert rejected["status"] == "rejected"
        assert await container.guild_posts.list_posts(guild["guild_id"], 3) == []


class TestComments:

    async def test_comment_counts(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        first = await container.guild_posts.create_comment(post["post_id"], 1, "Nice summary")
        reply = await container.guild_posts.create_comment(post["post_id"], 3, "Thanks!", parent_id=first["comment_id"])

        assert reply["parent_id"] == first["comment_id"]
        assert reply["comment_count"] == 2
        assert (await container.notifications.get_latest(3, 1))[0]["title"] == "New comment on your post"

        removed = await container.guild_posts.delete_comment(reply["comment_id"], 3)

        assert removed["comment_count"] == 1
        assert [c["comment_id"] for c in await container.guild_posts.list_comments(post["post_id"], 2)] == [
            first["comment_id"]
        ]

    async def test_parent_must_be_on_same_post(self, container, board):
        post_a = await make_post(container, board["guild_id"], 3, title="A")
        post_b = await make_post(container, board["guild_id"], 3, title="B")
        comment = await container.guild_posts.create_comment(post_a["post_id"], 1, "On A")

        with pytest.raises(ValidationError):
            await container.guild_posts.create_comment(post_b["post_id"], 1, "Reply", parent_id=comment["comment_id"])

    async def test_locked_post_takes_no_comments(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        await container.guild_posts.lock_post(post["post_id"], 2)

        with pytest.raises(ForbiddenError):
            await container.guild_posts.create_comment(post["post_id"], 1, "Too late")

    async def test_comment_deletion_rules(self, container, board):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "My take")

        with pytest.raises(ForbiddenError):
            await container.guild_posts.delete_comment(comment["comment_id"], 9)

        # Locks bind the comment author, not moderators
        await container.guild_posts.lock_post(post["post_id"], 1)
        with pytest.raises(ForbiddenError):
            await container.guild_posts.delete_comment(comment["comment_id"], 3)

        removed = await container.guild_posts.delete_comment(comment["comment_id"], 2)
        assert removed["status"] == "removed"

        with pytest.raises(NotFoundError):
            await container.guild_posts.delete_comment(comment["comment_id"], 2)

    async def test_author_edits_comment(self, container, board, recorded_events):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "First draft")

        edited = await container.guild_posts.edit_comment(comment["comment_id"], 3, "  Second draft ")

        assert edited["content"] == "Second draft"
        assert edited["edited_at"] is not None
        assert comment["edited_at"] is None
        listed = await container.guild_posts.list_comments(post["post_id"], 1)
        assert [c["content"] for c in listed] == ["Second draft"]
        assert ("guild.comment_edited", {
            "comment_id": comment["comment_id"],
            "post_id": post["post_id"],
            "guild_id": board["guild_id"],
            "author_id": 3,
        }) in recorded_events

    async def test_only_the_author_edits_a_comment(self, container, board):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "My take")

        # Moderators may remove the comment but never reword it
        for actor_id in (1, 2):
            with pytest.raises(ForbiddenError):
                await container.guild_posts.edit_comment(comment["comment_id"], actor_id, "Reworded")

        with pytest.raises(ValidationError):
            await container.guild_posts.edit_comment(comment["comment_id"], 3, "   ")

    async def test_locked_post_freezes_comments(self, container, board):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "My take")
        await container.guild_posts.lock_post(post["post_id"], 2)

        with pytest.raises(ForbiddenError):
            await container.guild_posts.edit_comment(comment["comment_id"], 3, "Changed my mind")

        await container.guild_posts.unlock_post(post["post_id"], 2)
        edited = await container.guild_posts.edit_comment(comment["comment_id"], 3, "Changed my mind")
        assert edited["content"] == "Changed my mind"

    async def test_removed_comment_cannot_be_edited(self, container, board):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "Oops")
        await container.guild_posts.delete_comment(comment["comment_id"], 3)

        with pytest.raises(NotFoundError):
            await container.guild_posts.edit_comment(comment["comment_id"], 3, "Fixed")

    async def test_comment_count_out_of_sync(self, container, board):
        post = await make_post(container, board["guild_id"], 1)
        comment = await container.guild_posts.create_comment(post["post_id"], 3, "Hello")
        await _reset_counters(post["post_id"])

        with pytest.raises(ConflictError):
            await container.guild_posts.delete_comment(comment["comment_id"], 3)

        # The removal rolled back with the rejected decrement
        assert len(await container.guild_posts.list_comments(post["post_id"], 1)) == 1


class TestLikes:

    async def test_like_is_idempotent(self, container, board):
        post = await make_post(container, board["guild_id"], 3)

        first = await container.guild_posts.like_post(post["post_id"], 1)
        second = await container.guild_posts.like_post(post["post_id"], 1)
        await container.guild_posts.like_post(post["post_id"], 2)

        assert first["like_count"] == 1
        assert second["like_count"] == 1
        assert await _like_rows(post["post_id"]) == 2
        assert (await container.guild_posts.get_post(post["post_id"], 3))["like_count"] == 2

    async def test_unlike(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        await container.guild_posts.like_post(post["post_id"], 1)

        result = await container.guild_posts.unlike_post(post["post_id"], 1)
        noop = await container.guild_posts.unlike_post(post["post_id"], 1)

        assert result == {"post_id": post["post_id"], "liked": False, "like_count": 0}
        assert noop["like_count"] == 0
        assert await _like_rows(post["post_id"]) == 0

    async def test_own_like_sends_no_notification(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        before = await container.notifications.count_unread(3)

        await container.guild_posts.like_post(post["post_id"], 3)

        assert await container.notifications.count_unread(3) == before

    async def test_like_count_out_of_sync(self, container, board):
        post = await make_post(container, board["guild_id"], 3)
        await container.guild_posts.like_post(post["post_id"], 1)
        await _reset_counters(post["post_id"])

        with pytest.raises(ConflictError):
            await container.guild_posts.unlike_post(post["post_id"], 1)

        assert await _like_rows(post["post_id"]) == 1
        assert (await container.guild_posts.get_post(post["post_id"], 3))["like_count"] == 0
