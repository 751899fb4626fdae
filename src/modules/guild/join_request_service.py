"""
GuildJoinRequestService - Users asking to join a guild
======================================================

Handles:
- Submitting a join request (or joining directly when the guild is public
  and does not require approval)
- Approving / rejecting by owners and admins
- Cancelling by the requester
- Listing a user's requests and a guild's queue

Lifecycle
---------
pending -> accepted | rejected | cancelled | expired, one-way and
compare-and-set on ``status = 'pending'``. A pending request past
``expires_at`` is treated as expired and persisted as such when touched.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import JoinRequestStatus
from src.database.models.social.guild_join_request import GuildJoinRequest
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction, GroupKind
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ConflictError, ForbiddenError, GoneError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy
    from src.modules.notification.service import NotificationService

MAX_MESSAGE_LENGTH = 500
_LABEL = "Guild join request"


def join_request_to_dict(request: GuildJoinRequest, guild_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "request_id": request.id,
        "guild_id": request.guild_id,
        "guild_name": guild_name,
        "requester_id": request.requester_id,
        "message": request.message,
        "status": request.status.value,
        "expires_at": request.expires_at,
        "created_at": request.created_at,
        "responded_at": request.responded_at,
        "reviewed_by": request.reviewed_by,
    }


def is_pending(request: Dict[str, Any]) -> bool:
    return request["status"] == JoinRequestStatus.PENDING.value


class GuildJoinRequestService(BaseService):
    """
    Join-request engine for guilds.

    Business Logic:
    - Active members and users with a pending request cannot request again
    - Guild membership is exclusive, so members of another guild are refused
    - Public guilds without approval admit the requester immediately; the
      request is recorded as accepted
    - Owners and admins (``review_join_request``) approve or reject
    - Approval cancels the requester's other pending requests
    - Owners and admins are notified of new requests, the requester of the
      outcome
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
        self._request_repo = BaseRepository[GuildJoinRequest](GuildJoinRequest, self.log)

    async def _expire(self, session: AsyncSession, request: GuildJoinRequest) -> bool:
        return await self._request_repo.compare_and_set(
            session,
            request,
            expected={"status": JoinRequestStatus.PENDING},
            values={"status": JoinRequestStatus.EXPIRED},
        )

    async def _transition(
        self,
        session: AsyncSession,
        request: GuildJoinRequest,
        status: JoinRequestStatus,
        **values: Any,
    ) -> None:
        swapped = await self._request_repo.compare_and_set(
            session,
            request,
            expected={"status": JoinRequestStatus.PENDING},
            values={"status": status, **values},
        )
        if not swapped:
            raise ConflictError(_LABEL, "join request is no longer pending")

    @staticmethod
    def _ensure_pending(request: GuildJoinRequest) -> None:
        if request.status != JoinRequestStatus.PENDING:
            raise ConflictError(
                _LABEL,
                f"join request is {request.status.value}",
                details={"status": request.status.value},
            )

    async def _load(self, session: AsyncSession, request_id: int) -> GuildJoinRequest:
        request = await self._request_repo.get_for_update(session, request_id)
        if request is None:
            raise NotFoundError(_LABEL, request_id)
        return request

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    async def request(self, guild_id: int, requester_id: int, message: Optional[str] = None) -> Dict[str, Any]:
        """
        Ask to join a guild.

        Returns:
            Dict with the request; ``status`` is ``accepted`` when the guild
            admitted the requester directly

        Raises:
            NotFoundError: Guild not found
            ConflictError: Guild dissolved, already a member (here or in
                another guild), already pending, or the guild is full
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        requester_id = InputValidator.validate_user_id(requester_id, "requester_id")
        message = InputValidator.validate_optional_string(message, "message", max_length=MAX_MESSAGE_LENGTH)

        expiry_days = self.get_config("community.join_requests.expiry_days", default=14)
        created_notifications = []
        auto_joined = False

        async with DatabaseService.get_transaction() as session:
            guild = await self._members.get_group(session, guild_id, for_update=True)
            self._members.ensure_open(guild, _LABEL)

            if await self._members.get_active_member(session, guild_id, requester_id) is not None:
                raise ConflictError(_LABEL, "user is already an active member")

            if await self._members.has_active_membership_elsewhere(session, requester_id, guild_id):
                raise ConflictError(_LABEL, "user already belongs to another guild")

            existing = await self._request_repo.find_one_where(
                session,
                GuildJoinRequest.guild_id == guild_id,
                GuildJoinRequest.requester_id == requester_id,
                GuildJoinRequest.status == JoinRequestStatus.PENDING,
                for_update=True,
            )
            now = self.now()
            if existing is not None:
                if existing.expires_at > now:
                    raise ConflictError(
                        _LABEL, "a pending join request already exists", details={"request_id": existing.id}
                    )
                await self._expire(session, existing)

            join_request = GuildJoinRequest(
                guild_id=guild_id,
                requester_id=requester_id,
                message=message,
                status=JoinRequestStatus.PENDING,
                expires_at=now + timedelta(days=expiry_days),
            )

            if guild.is_public and not guild.requires_approval:
                await self._members.activate(session, guild, requester_id, self.adapter.default_role, now)
                join_request.status = JoinRequestStatus.ACCEPTED
                join_request.responded_at = now
                auto_joined = True

            self._request_repo.add(session, join_request)
            try:
                await self._request_repo.flush(session)
            except IntegrityError as exc:
                raise ConflictError(_LABEL, "a pending join request already exists") from exc

            if not auto_joined:
                requester_name = await self._notifications.display_name(requester_id)
                reviewers = [
                    m
                    for m in await self._members.list_active(session, guild_id)
                    if self._policy.allows(GroupKind.GUILD, m.role, CommunityAction.REVIEW_JOIN_REQUEST)
                ]
                for reviewer in reviewers:
                    created_notifications.append(
                        await self._notifications.notify(
                            session,
                            reviewer.user_id,
                            self.adapter.notification_type,
                            "New join request",
                            f"{requester_name} asked to join {guild.name}.",
                            {"request_id": join_request.id, "guild_id": guild_id, "requester_id": requester_id},
                        )
                    )

            result = join_request_to_dict(join_request, guild.name)
            result["member_count"] = guild.member_count

        self.log_operation(
            "request_join",
            group_id=guild_id,
            user_id=requester_id,
            request_id=result["request_id"],
            auto_joined=auto_joined,
        )
        if auto_joined:
            await self.emit_event(
                "guild.member_joined",
                {
                    "guild_id": guild_id,
                    "user_id": requester_id,
                    "via": "join_request",
                    "member_count": result["member_count"],
                },
            )
        else:
            await self.emit_event(
                "guild.join_requested",
                {"request_id": result["request_id"], "guild_id": guild_id, "requester_id": requester_id},
            )
        await self._notifications.announce(created_notifications)
        return result

    async def approve(self, request_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Approve a pending request; the requester joins with the member role.

        Raises:
            NotFoundError: Request not found
            ForbiddenError: Actor lacks ``review_join_request``
            ConflictError: Not pending, guild full, requester already in a guild
            GoneError: Request expired (persisted as expired first)
        """
        return await self._review(request_id, actor_id, approve=True)

    async def reject(self, request_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Reject a pending request. Membership is never touched.

        Raises:
            NotFoundError, ForbiddenError, ConflictError, GoneError: as for approve
        """
        return await self._review(request_id, actor_id, approve=False)

    async def _review(self, request_id: int, actor_id: int, *, approve: bool) -> Dict[str, Any]:
        request_id = InputValidator.validate_entity_id(request_id, "request_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        operation = "approve_join_request" if approve else "reject_join_request"

        expired = False
        cancelled_ids: List[int] = []
        created_notifications = []
        result: Dict[str, Any] = {}

        async with DatabaseService.get_transaction() as session:
            join_request = await self._load(session, request_id)

            actor_role = await self._members.active_role(session, join_request.guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, actor_role, CommunityAction.REVIEW_JOIN_REQUEST)
            self._ensure_pending(join_request)

            now = self.now()
            if join_request.expires_at <= now:
                await self._expire(session, join_request)
                expired = True
            else:
                guild = await self._members.get_group(session, join_request.guild_id, for_update=True)

                if approve:
                    await self._transition(
                        session, join_request, JoinRequestStatus.ACCEPTED, responded_at=now, reviewed_by=actor_id
                    )
                    await self._members.activate(
                        session, guild, join_request.requester_id, self.adapter.default_role, now
                    )

                    others = await self._request_repo.find_many_where(
                        session,
                        GuildJoinRequest.requester_id == join_request.requester_id,
                        GuildJoinRequest.status == JoinRequestStatus.PENDING,
                        GuildJoinRequest.id != join_request.id,
                    )
                    cancelled_ids = [other.id for other in others]
                    if cancelled_ids:
                        await self._request_repo.update_where(
                            session,
                            {"status": JoinRequestStatus.CANCELLED, "responded_at": now},
                            GuildJoinRequest.id.in_(cancelled_ids),
                            GuildJoinRequest.status == JoinRequestStatus.PENDING,
                        )
                    title = "Join request approved"
                    body = f"Welcome to {guild.name}!"
                else:
                    await self._transition(
                        session, join_request, JoinRequestStatus.REJECTED, responded_at=now, reviewed_by=actor_id
                    )
                    title = "Join request rejected"
                    body = f"Your request to join {guild.name} was not accepted."

                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        join_request.requester_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {"request_id": join_request.id, "guild_id": guild.id, "status": join_request.status.value},
                    )
                )

                result = join_request_to_dict(join_request, guild.name)
                result["member_count"] = guild.member_count
                if approve:
                    result["cancelled_request_ids"] = cancelled_ids

        if expired:
            raise GoneError(_LABEL, request_id)

        self.log_operation(
            operation,
            group_id=result["guild_id"],
            user_id=actor_id,
            request_id=request_id,
            requester_id=result["requester_id"],
        )
        event = "guild.join_request_approved" if approve else "guild.join_request_rejected"
        await self.emit_event(
            event,
            {
                "request_id": request_id,
                "guild_id": result["guild_id"],
                "requester_id": result["requester_id"],
                "reviewed_by": actor_id,
            },
        )
        if approve:
            await self.emit_event(
                "guild.member_joined",
                {
                    "guild_id": result["guild_id"],
                    "user_id": result["requester_id"],
                    "via": "join_request",
                    "member_count": result["member_count"],
                },
            )
        await self._notifications.announce(created_notifications)
        return result

    async def cancel(self, request_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Withdraw one's own pending request.

        Raises:
            NotFoundError: Request not found
            ForbiddenError: Actor is not the requester
            ConflictError: Not pending
        """
        request_id = InputValidator.validate_entity_id(request_id, "request_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            join_request = await self._load(session, request_id)
            if join_request.requester_id != actor_id:
                raise ForbiddenError("cancel_join_request", "only the requester may cancel a join request")
            self._ensure_pending(join_request)

            await self._transition(session, join_request, JoinRequestStatus.CANCELLED, responded_at=self.now())
            result = join_request_to_dict(join_request)

        self.log_operation("cancel_join_request", group_id=result["guild_id"], user_id=actor_id, request_id=request_id)
        await self.emit_event(
            "guild.join_request_cancelled",
            {"request_id": request_id, "guild_id": result["guild_id"], "requester_id": actor_id},
        )
        return result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def _with_lazy_expiry(self, session: AsyncSession, rows: List[GuildJoinRequest]) -> None:
        now = self.now()
        for row in rows:
            if row.status == JoinRequestStatus.PENDING and row.expires_at <= now:
                await self._expire(session, row)

    async def list_mine(self, user_id: int, pending_only: bool = False) -> List[Dict[str, Any]]:
        """A user's join requests, newest first. ``pending_only`` filters after fetch."""
        user_id = InputValidator.validate_user_id(user_id, "user_id")

        async with DatabaseService.get_transaction() as session:
            rows = await self._request_repo.find_many_where(
                session,
                GuildJoinRequest.requester_id == user_id,
                order_by=[GuildJoinRequest.created_at.desc(), GuildJoinRequest.id.desc()],
            )
            await self._with_lazy_expiry(session, rows)
            guilds = await self._members.groups.get_many(session, list({row.guild_id for row in rows}))
            names = {guild.id: guild.name for guild in guilds}
            requests = [join_request_to_dict(row, names.get(row.guild_id)) for row in rows]

        if pending_only:
            requests = [r for r in requests if is_pending(r)]
        return requests

    async def list_for_group(self, guild_id: int, actor_id: int, pending_only: bool = True) -> List[Dict[str, Any]]:
        """
        A guild's join requests, oldest first. Visible to reviewers only.

        Raises:
            NotFoundError: Guild not found
            ForbiddenError: Actor lacks ``review_join_request``
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            guild = await self._members.get_group(session, guild_id)
            actor_role = await self._members.active_role(session, guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, actor_role, CommunityAction.REVIEW_JOIN_REQUEST)

            rows = await self._request_repo.find_many_where(
                session,
                GuildJoinRequest.guild_id == guild_id,
                order_by=[GuildJoinRequest.created_at.asc(), GuildJoinRequest.id.asc()],
            )
            await self._with_lazy_expiry(session, rows)
            requests = [join_request_to_dict(row, guild.name) for row in rows]

        if pending_only:
            requests = [r for r in requests if is_pending(r)]
        return requests

    async def pending_count(self, guild_id: int) -> int:
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")

        async with DatabaseService.get_session() as session:
            return await self._request_repo.count(
                session,
                GuildJoinRequest.guild_id == guild_id,
                GuildJoinRequest.status == JoinRequestStatus.PENDING,
                GuildJoinRequest.expires_at > self.now(),
            )
