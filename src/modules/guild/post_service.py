"""
GuildPostService - Guild discussion board and its moderation
============================================================

Handles:
- Posts: create, edit, soft delete (own or forced), approval queue
- Moderation flags: pin, lock, announcement
- Threaded comments with editing and removal
- Likes (idempotent)
- Listing posts and comments

Authorization is delegated to ``AuthorizationPolicy`` with the post's
moderation state passed as ``ResourceFlags``: a locked post refuses author
edits, deletes, comments and likes, and moderator actions ignore authorship.

``comment_count`` and ``like_count`` only move through SQL increments in the
transaction that adds or removes the child row.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import CommentStatus, PostStatus
from src.database.models.social.guild_post import GuildPost
from src.database.models.social.guild_post_comment import GuildPostComment
from src.database.models.social.guild_post_like import GuildPostLike
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction, GroupKind, ResourceFlags
from src.modules.notification.service import clamp_page_size
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy
    from src.modules.notification.service import NotificationService


def post_to_dict(post: GuildPost) -> Dict[str, Any]:
    return {
        "post_id": post.id,
        "guild_id": post.guild_id,
        "author_id": post.author_id,
        "title": post.title,
        "content": post.content,
        "tags": list(post.tags or []),
        "attachments": list(post.attachments or []),
        "is_pinned": post.is_pinned,
        "is_locked": post.is_locked,
        "is_announcement": post.is_announcement,
        "status": post.status.value,
        "comment_count": post.comment_count,
        "like_count": post.like_count,
        "created_at": post.created_at,
        "edited_at": post.edited_at,
        "moderated_by": post.moderated_by,
    }


def comment_to_dict(comment: GuildPostComment) -> Dict[str, Any]:
    return {
        "comment_id": comment.id,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "author_id": comment.author_id,
        "content": comment.content,
        "status": comment.status.value,
        "created_at": comment.created_at,
        "edited_at": comment.edited_at,
    }


class GuildPostService(BaseService):
    """
    Content moderation engine for guild posts.

    Business Logic:
    - Only active members may read or write
    - New posts start pending in guilds that require approval
    - Authors edit and delete their own posts while unlocked
    - Moderators (admin/owner) pin, lock, force-delete and review,
      regardless of authorship
    - Comments and likes require a published, unlocked post
    - A comment author may edit or remove their comment while the post is unlocked;
      ``force_delete_comment`` holders always may
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        adapter: GroupAdapter,
        policy: AuthorizationPolicy,
        notifications: NotificationService,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.adapter = adapter
        self._policy = policy
        self._notifications = notifications
        self._members = MembershipRepository(adapter, self.log)
        self._post_repo = BaseRepository[GuildPost](GuildPost, self.log)
        self._comment_repo = BaseRepository[GuildPostComment](GuildPostComment, self.log)
        self._like_repo = BaseRepository[GuildPostLike](GuildPostLike, self.log)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _limit(self, name: str, default: int) -> int:
        return self.get_config(f"community.posts.{name}", default=default)

    def _validate_title(self, title: Any) -> str:
        return InputValidator.validate_string(
            title, "title", min_length=1, max_length=self._limit("max_title_length", 200)
        )

    def _validate_content(self, content: Any) -> str:
        return InputValidator.validate_string(
            content, "content", min_length=1, max_length=self._limit("max_content_length", 20_000)
        )

    def _validate_comment(self, content: Any) -> str:
        return InputValidator.validate_string(
            content, "content", min_length=1, max_length=self._limit("max_comment_length", 5_000)
        )

    def _validate_tags(self, tags: Any) -> List[str]:
        return InputValidator.validate_tags(tags, "tags", max_count=self._limit("max_tags", 10))

    def _validate_attachments(self, attachments: Any) -> List[str]:
        return InputValidator.validate_string_list(
            attachments, "attachments", max_count=self._limit("max_attachments", 10)
        )

    @staticmethod
    def _flags(post: GuildPost, actor_id: int) -> ResourceFlags:
        return ResourceFlags(is_author=post.author_id == actor_id, is_locked=post.is_locked)

    async def _load_post(self, session: AsyncSession, post_id: int, *, for_update: bool = False) -> GuildPost:
        """Load a post that has not been removed."""
        if for_update:
            post = await self._post_repo.get_for_update(session, post_id)
        else:
            post = await self._post_repo.get(session, post_id)
        if post is None or post.status == PostStatus.REMOVED:
            raise NotFoundError("Guild post", post_id)
        return post

    async def _role(self, session: AsyncSession, guild_id: int, actor_id: int) -> Any:
        return await self._members.active_role(session, guild_id, actor_id)

    def _can_see(self, post: GuildPost, actor_id: int, role: Any) -> bool:
        if post.status == PostStatus.PUBLISHED:
            return True
        if post.author_id == actor_id:
            return True
        return self._policy.allows(GroupKind.GUILD, role, CommunityAction.REVIEW_POST)

    @staticmethod
    def _ensure_published(post: GuildPost) -> None:
        if post.status != PostStatus.PUBLISHED:
            raise ConflictError("Guild post", f"post is {post.status.value}", details={"status": post.status.value})

    async def _notify_author(
        self,
        session: AsyncSession,
        post: GuildPost,
        actor_id: int,
        title: str,
        message: str,
        payload: Dict[str, Any],
    ) -> List[Any]:
        if post.author_id == actor_id:
            return []
        return [
            await self._notifications.notify(
                session, post.author_id, self.adapter.notification_type, title, message, payload
            )
        ]

    # -------------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------------

    async def create_post(
        self,
        guild_id: int,
        author_id: int,
        title: str,
        content: str,
        tags: Optional[List[str]] = None,
        attachments: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Publish a post, or queue it when the guild requires approval.

        Raises:
            ValidationError: Bad title, content, tags or attachments
            NotFoundError: Guild not found
            ForbiddenError: Author is not an active member
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        author_id = InputValidator.validate_user_id(author_id, "author_id")
        title = self._validate_title(title)
        content = self._validate_content(content)
        tags = self._validate_tags(tags)
        attachments = self._validate_attachments(attachments)

        async with DatabaseService.get_transaction() as session:
            guild = await self._members.get_group(session, guild_id)
            role = await self._role(session, guild_id, author_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.CREATE_POST)

            post = GuildPost(
                guild_id=guild_id,
                author_id=author_id,
                title=title,
                content=content,
                tags=tags,
                attachments=attachments,
                status=PostStatus.PENDING if guild.requires_approval else PostStatus.PUBLISHED,
            )
            self._post_repo.add(session, post)
            await self._post_repo.flush(session)
            result = post_to_dict(post)

        self.log_operation("create_post", group_id=guild_id, user_id=author_id, post_id=result["post_id"])
        await self.emit_event(
            "guild.post_created",
            {"post_id": result["post_id"], "guild_id": guild_id, "author_id": author_id, "status": result["status"]},
        )
        return result

    async def edit_post(
        self,
        post_id: int,
        actor_id: int,
        title: Optional[str] = None,
        content: Optional[str] = None,
        tags: Optional[List[str]] = None,
        attachments: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Edit one's own unlocked post. Omitted fields stay unchanged.

        Raises:
            ValidationError: Nothing to change, or a bad field
            NotFoundError: Post not found
            ForbiddenError: Actor is not the author, or the post is locked
        """
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        changes: Dict[str, Any] = {}
        if title is not None:
            changes["title"] = self._validate_title(title)
        if content is not None:
            changes["content"] = self._validate_content(content)
        if tags is not None:
            changes["tags"] = self._validate_tags(tags)
        if attachments is not None:
            changes["attachments"] = self._validate_attachments(attachments)
        if not changes:
            raise ValidationError("post", "Nothing to update")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.EDIT_OWN_POST, self._flags(post, actor_id))

            for field_name, value in changes.items():
                setattr(post, field_name, value)
            post.edited_at = self.now()
            await self._post_repo.flush(session)
            result = post_to_dict(post)

        self.log_operation("edit_post", group_id=result["guild_id"], user_id=actor_id, post_id=post_id)
        await self.emit_event(
            "guild.post_edited",
            {"post_id": post_id, "guild_id": result["guild_id"], "fields": sorted(changes)},
        )
        return result

    async def delete_post(self, post_id: int, actor_id: int, force: bool = False) -> Dict[str, Any]:
        """
        Soft-delete a post.

        Without ``force`` only the author may delete, and only while the post
        is unlocked. ``force`` bypasses both checks but requires
        ``force_delete_post``.

        Raises:
            NotFoundError: Post not found
            ForbiddenError: Authorship/lock check failed, or ``force`` without
                moderator rights
        """
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)

            if force:
                self._policy.require(GroupKind.GUILD, role, CommunityAction.FORCE_DELETE_POST)
            else:
                self._policy.require(
                    GroupKind.GUILD, role, CommunityAction.DELETE_OWN_POST, self._flags(post, actor_id)
                )

            now = self.now()
            removed = await self._post_repo.compare_and_set(
                session,
                post,
                expected={"status": post.status},
                values={
                    "status": PostStatus.REMOVED,
                    "removed_at": now,
                    "moderated_by": actor_id if force else post.moderated_by,
                },
            )
            if not removed:
                raise ConflictError("Guild post", "post changed concurrently")

            created_notifications = []
            if force:
                created_notifications = await self._notify_author(
                    session,
                    post,
                    actor_id,
                    "Post removed",
                    f"A moderator removed your post \"{post.title}\".",
                    {"post_id": post_id, "guild_id": post.guild_id},
                )
            result = post_to_dict(post)

        self.log_operation(
            "delete_post", group_id=result["guild_id"], user_id=actor_id, post_id=post_id, forced=bool(force)
        )
        await self.emit_event(
            "guild.post_removed",
            {"post_id": post_id, "guild_id": result["guild_id"], "removed_by": actor_id, "forced": bool(force)},
        )
        await self._notifications.announce(created_notifications)
        return result

    async def _set_flag(
        self,
        post_id: int,
        actor_id: int,
        action: CommunityAction,
        column: str,
        value: bool,
        event_name: str,
    ) -> Dict[str, Any]:
        """Toggle a moderation flag. Setting a flag to its current value is a no-op."""
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, role, action)

            changed = getattr(post, column) != value
            if changed:
                swapped = await self._post_repo.compare_and_set(
                    session,
                    post,
                    expected={column: not value},
                    values={column: value, "moderated_by": actor_id},
                )
                if not swapped:
                    raise ConflictError("Guild post", "post changed concurrently")
            result = post_to_dict(post)

        if changed:
            self.log_operation(event_name, group_id=result["guild_id"], user_id=actor_id, post_id=post_id)
            await self.emit_event(
                f"guild.{event_name}",
                {"post_id": post_id, "guild_id": result["guild_id"], "moderator_id": actor_id},
            )
        return result

    async def pin_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(post_id, actor_id, CommunityAction.PIN_POST, "is_pinned", True, "post_pinned")

    async def unpin_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(post_id, actor_id, CommunityAction.PIN_POST, "is_pinned", False, "post_unpinned")

    async def lock_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(post_id, actor_id, CommunityAction.LOCK_POST, "is_locked", True, "post_locked")

    async def unlock_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(post_id, actor_id, CommunityAction.LOCK_POST, "is_locked", False, "post_unlocked")

    async def set_announcement(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(
            post_id, actor_id, CommunityAction.SET_ANNOUNCEMENT, "is_announcement", True, "post_announcement_set"
        )

    async def unset_announcement(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._set_flag(
            post_id, actor_id, CommunityAction.SET_ANNOUNCEMENT, "is_announcement", False, "post_announcement_unset"
        )

    async def approve_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Publish a pending post.

        Raises:
            NotFoundError: Post not found
            ForbiddenError: Actor lacks ``review_post``
            ConflictError: Post is not pending
        """
        return await self._review(post_id, actor_id, PostStatus.PUBLISHED)

    async def reject_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        return await self._review(post_id, actor_id, PostStatus.REJECTED)

    async def _review(self, post_id: int, actor_id: int, outcome: PostStatus) -> Dict[str, Any]:
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.REVIEW_POST)

            swapped = await self._post_repo.compare_and_set(
                session,
                post,
                expected={"status": PostStatus.PENDING},
                values={"status": outcome, "moderated_by": actor_id},
            )
            if not swapped:
                raise ConflictError("Guild post", f"post is {post.status.value}", details={"status": post.status.value})

            verdict = "approved" if outcome == PostStatus.PUBLISHED else "rejected"
            created_notifications = await self._notify_author(
                session,
                post,
                actor_id,
                f"Post {verdict}",
                f"Your post \"{post.title}\" was {verdict}.",
                {"post_id": post_id, "guild_id": post.guild_id, "status": outcome.value},
            )
            result = post_to_dict(post)

        self.log_operation(f"post_{verdict}", group_id=result["guild_id"], user_id=actor_id, post_id=post_id)
        await self.emit_event(
            f"guild.post_{verdict}",
            {"post_id": post_id, "guild_id": result["guild_id"], "moderator_id": actor_id},
        )
        await self._notifications.announce(created_notifications)
        return result

    async def get_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Post not found or not visible to the actor
            ForbiddenError: Actor is not an active member
        """
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_session() as session:
            post = await self._load_post(session, post_id)
            role = await self._role(session, post.guild_id, actor_id)
            if role is None:
                raise ForbiddenError("view_post", "not an active member")
            if not self._can_see(post, actor_id, role):
                raise NotFoundError("Guild post", post_id)
            return post_to_dict(post)

    async def list_posts(
        self,
        guild_id: int,
        actor_id: int,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Posts visible to the actor: pinned first, then newest.

        Members see published posts and their own pending ones; reviewers
        also see every pending post.
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        offset = InputValidator.validate_integer(offset, "offset", min_value=0)
        page_size = clamp_page_size(None if limit is None else InputValidator.validate_integer(limit, "limit"))

        async with DatabaseService.get_session() as session:
            await self._members.get_group(session, guild_id)
            role = await self._role(session, guild_id, actor_id)
            if role is None:
                raise ForbiddenError("list_posts", "not an active member")

            conditions = [GuildPost.guild_id == guild_id]
            if self._policy.allows(GroupKind.GUILD, role, CommunityAction.REVIEW_POST):
                conditions.append(GuildPost.status.in_([PostStatus.PUBLISHED, PostStatus.PENDING]))
            else:
                conditions.append(
                    (GuildPost.status == PostStatus.PUBLISHED)
                    | ((GuildPost.status == PostStatus.PENDING) & (GuildPost.author_id == actor_id))
                )

            rows = await self._post_repo.find_many_where(
                session,
                *conditions,
                order_by=[GuildPost.is_pinned.desc(), GuildPost.created_at.desc(), GuildPost.id.desc()],
                limit=page_size,
                offset=offset,
            )
            return [post_to_dict(row) for row in rows]

    # -------------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------------

    async def create_comment(
        self,
        post_id: int,
        author_id: int,
        content: str,
        parent_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Comment on a published, unlocked post, optionally replying to a
        comment on the same post.

        Raises:
            ValidationError: Bad content, or the parent belongs to another post
            NotFoundError: Post not found
            ForbiddenError: Not a member, or the post is locked
            ConflictError: Post is not published
        """
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        author_id = InputValidator.validate_user_id(author_id, "author_id")
        content = self._validate_comment(content)
        if parent_id is not None:
            parent_id = InputValidator.validate_entity_id(parent_id, "parent_id")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, author_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.COMMENT, self._flags(post, author_id))
            self._ensure_published(post)

            if parent_id is not None:
                parent = await self._comment_repo.get(session, parent_id)
                if parent is None or parent.post_id != post_id or parent.status == CommentStatus.REMOVED:
                    raise ValidationError("parent_id", "Parent comment must be a visible comment on the same post")

            comment = GuildPostComment(
                post_id=post_id,
                parent_id=parent_id,
                author_id=author_id,
                content=content,
                status=CommentStatus.VISIBLE,
            )
            self._comment_repo.add(session, comment)
            await self._comment_repo.flush(session)
            await self._post_repo.increment(session, post, "comment_count", 1)

            commenter = await self._notifications.display_name(author_id)
            created_notifications = await self._notify_author(
                session,
                post,
                author_id,
                "New comment on your post",
                f"{commenter} commented on \"{post.title}\".",
                {"post_id": post_id, "guild_id": post.guild_id, "comment_id": comment.id},
            )
            result = comment_to_dict(comment)
            result["comment_count"] = post.comment_count
            guild_id = post.guild_id

        self.log_operation("create_comment", group_id=guild_id, user_id=author_id, post_id=post_id)
        await self.emit_event(
            "guild.comment_created",
            {"comment_id": result["comment_id"], "post_id": post_id, "guild_id": guild_id, "author_id": author_id},
        )
        await self._notifications.announce(created_notifications)
        return result

    async def edit_comment(self, comment_id: int, actor_id: int, content: str) -> Dict[str, Any]:
        """
        Edit one's own comment while the post is unlocked.

        Raises:
            ValidationError: Bad content
            NotFoundError: Comment or post not found
            ForbiddenError: Actor is not the author, or the post is locked
        """
        comment_id = InputValidator.validate_entity_id(comment_id, "comment_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        content = self._validate_comment(content)

        async with DatabaseService.get_transaction() as session:
            comment = await self._comment_repo.get_for_update(session, comment_id)
            if comment is None or comment.status == CommentStatus.REMOVED:
                raise NotFoundError("Guild post comment", comment_id)

            post = await self._load_post(session, comment.post_id)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(
                GroupKind.GUILD,
                role,
                CommunityAction.EDIT_OWN_COMMENT,
                ResourceFlags(is_author=comment.author_id == actor_id, is_locked=post.is_locked),
            )

            comment.content = content
            comment.edited_at = self.now()
            await self._comment_repo.flush(session)
            result = comment_to_dict(comment)
            guild_id = post.guild_id

        self.log_operation("edit_comment", group_id=guild_id, user_id=actor_id, comment_id=comment_id)
        await self.emit_event(
            "guild.comment_edited",
            {"comment_id": comment_id, "post_id": result["post_id"], "guild_id": guild_id, "author_id": actor_id},
        )
        return result

    async def delete_comment(self, comment_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Remove a comment and decrement the post's ``comment_count``.

        The comment author may remove it while the post is unlocked; holders
        of ``force_delete_comment`` always may.

        Raises:
            NotFoundError: Comment or post not found
            ForbiddenError: Neither rule permits the actor
        """
        comment_id = InputValidator.validate_entity_id(comment_id, "comment_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            comment = await self._comment_repo.get_for_update(session, comment_id)
            if comment is None or comment.status == CommentStatus.REMOVED:
                raise NotFoundError("Guild post comment", comment_id)

            post = await self._load_post(session, comment.post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)

            own_flags = ResourceFlags(is_author=comment.author_id == actor_id, is_locked=post.is_locked)
            forced = False
            if not self._policy.allows(GroupKind.GUILD, role, CommunityAction.DELETE_OWN_COMMENT, own_flags):
                if self._policy.allows(GroupKind.GUILD, role, CommunityAction.FORCE_DELETE_COMMENT):
                    forced = True
                else:
                    self._policy.require(GroupKind.GUILD, role, CommunityAction.DELETE_OWN_COMMENT, own_flags)

            removed = await self._comment_repo.compare_and_set(
                session,
                comment,
                expected={"status": CommentStatus.VISIBLE},
                values={"status": CommentStatus.REMOVED, "removed_at": self.now(), "removed_by": actor_id},
            )
            if not removed:
                raise ConflictError("Guild post comment", "comment was already removed")

            if not await self._post_repo.increment(session, post, "comment_count", -1, floor=0):
                raise ConflictError("Guild post", "comment count out of sync")
            result = comment_to_dict(comment)
            result["comment_count"] = post.comment_count
            guild_id = post.guild_id

        self.log_operation("delete_comment", group_id=guild_id, user_id=actor_id, comment_id=comment_id, forced=forced)
        await self.emit_event(
            "guild.comment_removed",
            {"comment_id": comment_id, "post_id": result["post_id"], "guild_id": guild_id, "removed_by": actor_id},
        )
        return result

    async def list_comments(self, post_id: int, actor_id: int) -> List[Dict[str, Any]]:
        """Visible comments on a post, oldest first."""
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_session() as session:
            post = await self._load_post(session, post_id)
            role = await self._role(session, post.guild_id, actor_id)
            if role is None:
                raise ForbiddenError("list_comments", "not an active member")
            if not self._can_see(post, actor_id, role):
                raise NotFoundError("Guild post", post_id)

            rows = await self._comment_repo.find_many_where(
                session,
                GuildPostComment.post_id == post_id,
                GuildPostComment.status == CommentStatus.VISIBLE,
                order_by=[GuildPostComment.created_at.asc(), GuildPostComment.id.asc()],
            )
            return [comment_to_dict(row) for row in rows]

    # -------------------------------------------------------------------------
    # Likes
    # -------------------------------------------------------------------------

    async def like_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Like a post. Liking twice is a no-op.

        Raises:
            NotFoundError: Post not found
            ForbiddenError: Not a member, or the post is locked
            ConflictError: Post is not published
        """
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        created_notifications: List[Any] = []
        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.LIKE, self._flags(post, actor_id))
            self._ensure_published(post)

            already = await self._like_repo.exists(
                session, GuildPostLike.post_id == post_id, GuildPostLike.user_id == actor_id
            )
            if not already:
                self._like_repo.add(session, GuildPostLike(post_id=post_id, user_id=actor_id))
                try:
                    await self._like_repo.flush(session)
                except IntegrityError as exc:
                    raise ConflictError("Guild post like", "like recorded concurrently") from exc
                await self._post_repo.increment(session, post, "like_count", 1)

                liker = await self._notifications.display_name(actor_id)
                created_notifications = await self._notify_author(
                    session,
                    post,
                    actor_id,
                    "New like on your post",
                    f"{liker} liked \"{post.title}\".",
                    {"post_id": post_id, "guild_id": post.guild_id},
                )

            result = {"post_id": post_id, "liked": True, "like_count": post.like_count}
            guild_id = post.guild_id

        if not already:
            self.log_operation("like_post", group_id=guild_id, user_id=actor_id, post_id=post_id)
            await self.emit_event("guild.post_liked", {"post_id": post_id, "guild_id": guild_id, "user_id": actor_id})
            await self._notifications.announce(created_notifications)
        return result

    async def unlike_post(self, post_id: int, actor_id: int) -> Dict[str, Any]:
        """Remove a like. Unliking a post one has not liked is a no-op."""
        post_id = InputValidator.validate_entity_id(post_id, "post_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            post = await self._load_post(session, post_id, for_update=True)
            role = await self._role(session, post.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, role, CommunityAction.LIKE, self._flags(post, actor_id))

            deleted = await self._like_repo.delete_where(
                session, GuildPostLike.post_id == post_id, GuildPostLike.user_id == actor_id
            )
            if deleted and not await self._post_repo.increment(session, post, "like_count", -deleted, floor=0):
                raise ConflictError("Guild post", "like count out of sync")

            result = {"post_id": post_id, "liked": False, "like_count": post.like_count}
            guild_id = post.guild_id

        if deleted:
            self.log_operation("unlike_post", group_id=guild_id, user_id=actor_id, post_id=post_id)
            await self.emit_event("guild.post_unliked", {"post_id": post_id, "guild_id": guild_id, "user_id": actor_id})
        return result
