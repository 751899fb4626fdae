"""
InvitationService - Generic invitation engine for guilds and parties
====================================================================

Handles:
- Creating invitations (by user id or e-mail), superseding older pending ones
- Accepting (creates/reactivates membership under the member cap)
- Declining and revoking
- Lazy expiry at accept/decline/list time, plus a sweep
- Binding e-mail invitations to a newly registered user

One instance per group kind, parameterised by a ``GroupAdapter``.

Lifecycle
---------
pending -> accepted | declined | expired | revoked, one-way. Every transition
is a compare-and-set on ``status = 'pending'`` so a racing request loses
with ``ConflictError`` instead of double-applying.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import InvitationStatus
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import (
    ConflictError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy
    from src.modules.notification.service import NotificationService

MAX_MESSAGE_LENGTH = 500


def invitation_to_dict(invitation: Any, group_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "invitation_id": invitation.id,
        "group_id": invitation.group_id,
        "group_name": group_name,
        "inviter_id": invitation.inviter_id,
        "invitee_id": invitation.invitee_id,
        "invitee_email": invitation.invitee_email,
        "message": invitation.message,
        "status": invitation.status.value,
        "expires_at": invitation.expires_at,
        "created_at": invitation.created_at,
        "responded_at": invitation.responded_at,
    }


class InvitationService(BaseService):
    """
    Invitation engine for one group kind.

    Business Logic:
    - Only roles with ``invite`` may invite (guild owner/admin, party leader)
    - Active members cannot be invited again
    - A new invite to the same invitee revokes the previous pending one
    - Only the invitee may accept or decline; only pending, unexpired
      invitations can be answered
    - Expired invitations are persisted as expired before ``GoneError``
      surfaces
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
        self._invitation_repo = BaseRepository[Any](adapter.invitation_model, self.log)

    @property
    def _label(self) -> str:
        return f"{self.adapter.label} invitation"

    def _event(self, name: str) -> str:
        return f"{self.adapter.event_prefix}.{name}"

    async def _expire(self, session: AsyncSession, invitation: Any) -> bool:
        return await self._invitation_repo.compare_and_set(
            session,
            invitation,
            expected={"status": InvitationStatus.PENDING},
            values={"status": InvitationStatus.EXPIRED},
        )

    async def _find_pending_for(
        self,
        session: AsyncSession,
        group_id: int,
        invitee_id: Optional[int],
        invitee_email: Optional[str],
    ) -> Optional[Any]:
        model = self.adapter.invitation_model
        target = model.invitee_id == invitee_id if invitee_id is not None else model.invitee_email == invitee_email
        return await self._invitation_repo.find_one_where(
            session,
            model.group_id == group_id,
            target,
            model.status == InvitationStatus.PENDING,
            for_update=True,
        )

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    async def invite(
        self,
        group_id: int,
        inviter_id: int,
        invitee_id: Optional[int] = None,
        invitee_email: Optional[str] = None,
        message: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Invite a registered user (``invitee_id``) or an e-mail address.

        Returns:
            Dict with the new invitation

        Raises:
            ValidationError: No/both invitee fields, malformed e-mail, past expiry
            NotFoundError: Group not found
            ForbiddenError: Inviter's role does not permit inviting
            ConflictError: Invitee already an active member, or group dissolved
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        inviter_id = InputValidator.validate_user_id(inviter_id, "inviter_id")

        if invitee_id is None and invitee_email is None:
            raise ValidationError("invitee", "Provide an invitee id or an e-mail address")
        if invitee_id is not None and invitee_email is not None:
            raise ValidationError("invitee", "Provide either an invitee id or an e-mail address, not both")

        if invitee_id is not None:
            invitee_id = InputValidator.validate_user_id(invitee_id, "invitee_id")
            if invitee_id == inviter_id:
                raise ValidationError("invitee_id", "You cannot invite yourself")
        else:
            invitee_email = InputValidator.validate_email(invitee_email, "invitee_email")

        message = InputValidator.validate_optional_string(message, "message", max_length=MAX_MESSAGE_LENGTH)

        now = self.now()
        if expires_at is None:
            expiry_days = self.get_config("community.invitations.expiry_days", 7)
            expires_at = now + timedelta(days=int(expiry_days))
        else:
            expires_at = InputValidator.validate_future_datetime(expires_at, "expires_at", now)

        model = self.adapter.invitation_model
        superseded_id: Optional[int] = None
        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id, for_update=True)
            self._members.ensure_open(group, self._label)

            inviter_role = await self._members.active_role(session, group_id, inviter_id)
            self._policy.require(self.adapter.kind, inviter_role, CommunityAction.INVITE)

            if invitee_id is not None and await self._members.get_active_member(session, group_id, invitee_id):
                raise ConflictError(self._label, "invitee is already an active member")

            previous = await self._find_pending_for(session, group_id, invitee_id, invitee_email)
            if previous is not None:
                revoked = await self._invitation_repo.compare_and_set(
                    session,
                    previous,
                    expected={"status": InvitationStatus.PENDING},
                    values={"status": InvitationStatus.REVOKED, "responded_at": now},
                )
                if not revoked:
                    raise ConflictError(self._label, "previous invitation changed concurrently")
                superseded_id = previous.id

            invitation = model(
                group_id=group_id,
                inviter_id=inviter_id,
                invitee_id=invitee_id,
                invitee_email=invitee_email,
                message=message,
                status=InvitationStatus.PENDING,
                expires_at=expires_at,
            )
            self._invitation_repo.add(session, invitation)
            try:
                await self._invitation_repo.flush(session)
            except IntegrityError as exc:
                raise ConflictError(self._label, "a pending invitation already exists") from exc

            if invitee_id is not None:
                inviter_name = await self._notifications.display_name(inviter_id)
                title, body = self.adapter.render(
                    "invitation_received", inviter_name=inviter_name, group_name=group.name
                )
                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        invitee_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {"invitation_id": invitation.id, "group_id": group_id, "kind": self.adapter.kind.value},
                    )
                )

            result = invitation_to_dict(invitation, group.name)
            result["superseded_invitation_id"] = superseded_id

        self.log_operation(
            "invite",
            group_kind=self.adapter.kind.value,
            group_id=group_id,
            user_id=inviter_id,
            invitation_id=result["invitation_id"],
            superseded_invitation_id=superseded_id,
        )
        await self.emit_event(
            self._event("invitation_created"),
            {
                "invitation_id": result["invitation_id"],
                "group_id": group_id,
                "inviter_id": inviter_id,
                "invitee_id": invitee_id,
                "superseded_invitation_id": superseded_id,
            },
        )
        await self._notifications.announce(created_notifications)
        return result

    async def accept(self, invitation_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Accept an invitation and join the group with the default role.

        Raises:
            NotFoundError: Invitation not found
            ForbiddenError: Actor is not the invitee
            ConflictError: Not pending, member cap reached, already a member
            GoneError: Invitation expired (persisted as expired first)
        """
        invitation_id = InputValidator.validate_entity_id(invitation_id, "invitation_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        expired = False
        created_notifications = []
        result: Dict[str, Any] = {}

        async with DatabaseService.get_transaction() as session:
            invitation = await self._answerable(session, invitation_id, actor_id, "accept_invitation")
            now = self.now()

            if invitation.expires_at <= now:
                await self._expire(session, invitation)
                expired = True
            else:
                group = await self._members.get_group(session, invitation.group_id, for_update=True)
                self._members.ensure_open(group, self._label)

                accepted = await self._invitation_repo.compare_and_set(
                    session,
                    invitation,
                    expected={"status": InvitationStatus.PENDING},
                    values={"status": InvitationStatus.ACCEPTED, "responded_at": now},
                )
                if not accepted:
                    raise ConflictError(self._label, "invitation is no longer pending")

                member = await self._members.activate(session, group, actor_id, self.adapter.default_role, now)

                actor_name = await self._notifications.display_name(actor_id)
                title, body = self.adapter.render("invitation_accepted", actor_name=actor_name, group_name=group.name)
                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        invitation.inviter_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {"invitation_id": invitation.id, "group_id": group.id, "user_id": actor_id},
                    )
                )

                result = invitation_to_dict(invitation, group.name)
                result.update(
                    {
                        "role": member.role.value,
                        "member_count": group.member_count,
                        "joined_at": member.joined_at,
                    }
                )

        if expired:
            raise GoneError(self._label, invitation_id)

        self.log_operation(
            "accept_invitation",
            group_kind=self.adapter.kind.value,
            group_id=result["group_id"],
            user_id=actor_id,
            invitation_id=invitation_id,
        )
        await self.emit_event(
            self._event("invitation_accepted"),
            {
                "invitation_id": invitation_id,
                "group_id": result["group_id"],
                "user_id": actor_id,
                "inviter_id": result["inviter_id"],
                "member_count": result["member_count"],
            },
        )
        await self._notifications.announce(created_notifications)
        return result

    async def decline(self, invitation_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Decline an invitation. Membership is never touched.

        Raises:
            NotFoundError, ForbiddenError, ConflictError, GoneError: as for accept
        """
        invitation_id = InputValidator.validate_entity_id(invitation_id, "invitation_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        expired = False
        created_notifications = []
        result: Dict[str, Any] = {}

        async with DatabaseService.get_transaction() as session:
            invitation = await self._answerable(session, invitation_id, actor_id, "decline_invitation")
            now = self.now()

            if invitation.expires_at <= now:
                await self._expire(session, invitation)
                expired = True
            else:
                declined = await self._invitation_repo.compare_and_set(
                    session,
                    invitation,
                    expected={"status": InvitationStatus.PENDING},
                    values={"status": InvitationStatus.DECLINED, "responded_at": now},
                )
                if not declined:
                    raise ConflictError(self._label, "invitation is no longer pending")

                group = await self._members.get_group(session, invitation.group_id)
                actor_name = await self._notifications.display_name(actor_id)
                title, body = self.adapter.render("invitation_declined", actor_name=actor_name, group_name=group.name)
                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        invitation.inviter_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {"invitation_id": invitation.id, "group_id": group.id, "user_id": actor_id},
                    )
                )
                result = invitation_to_dict(invitation, group.name)

        if expired:
            raise GoneError(self._label, invitation_id)

        self.log_operation(
            "decline_invitation",
            group_kind=self.adapter.kind.value,
            group_id=result["group_id"],
            user_id=actor_id,
            invitation_id=invitation_id,
        )
        await self.emit_event(
            self._event("invitation_declined"),
            {"invitation_id": invitation_id, "group_id": result["group_id"], "user_id": actor_id},
        )
        await self._notifications.announce(created_notifications)
        return result

    async def revoke(self, invitation_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Revoke a pending invitation. Allowed for the inviter or any role with
        ``revoke_invitation``.

        Raises:
            NotFoundError: Invitation not found
            ForbiddenError: Actor is neither the inviter nor a moderator
            ConflictError: Invitation is not pending
        """
        invitation_id = InputValidator.validate_entity_id(invitation_id, "invitation_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            invitation = await self._invitation_repo.get_for_update(session, invitation_id)
            if invitation is None:
                raise NotFoundError(self._label, invitation_id)

            if invitation.inviter_id != actor_id:
                role = await self._members.active_role(session, invitation.group_id, actor_id)
                self._policy.require(self.adapter.kind, role, CommunityAction.REVOKE_INVITATION)

            revoked = await self._invitation_repo.compare_and_set(
                session,
                invitation,
                expected={"status": InvitationStatus.PENDING},
                values={"status": InvitationStatus.REVOKED, "responded_at": self.now()},
            )
            if not revoked:
                raise ConflictError(self._label, "invitation is no longer pending")

            result = invitation_to_dict(invitation)

        self.log_operation(
            "revoke_invitation",
            group_kind=self.adapter.kind.value,
            group_id=result["group_id"],
            user_id=actor_id,
            invitation_id=invitation_id,
        )
        await self.emit_event(
            self._event("invitation_revoked"),
            {"invitation_id": invitation_id, "group_id": result["group_id"], "revoked_by": actor_id},
        )
        return result

    async def _answerable(self, session: AsyncSession, invitation_id: int, actor_id: int, action: str) -> Any:
        """Load an invitation for accept/decline, applying the guards in order."""
        invitation = await self._invitation_repo.get_for_update(session, invitation_id)
        if invitation is None:
            raise NotFoundError(self._label, invitation_id)

        if invitation.invitee_id != actor_id:
            raise ForbiddenError(action, "only the invitee may answer this invitation")

        if invitation.status != InvitationStatus.PENDING:
            raise ConflictError(
                self._label,
                f"invitation is {invitation.status.value}",
                details={"status": invitation.status.value},
            )
        return invitation

    # -------------------------------------------------------------------------
    # Queries & maintenance
    # -------------------------------------------------------------------------

    async def _pending_with_lazy_expiry(self, session: AsyncSession, *conditions: Any) -> List[Any]:
        model = self.adapter.invitation_model
        rows = await self._invitation_repo.find_many_where(
            session,
            model.status == InvitationStatus.PENDING,
            *conditions,
            order_by=[model.created_at.desc(), model.id.desc()],
        )

        now = self.now()
        live = []
        for invitation in rows:
            if invitation.expires_at <= now:
                await self._expire(session, invitation)
            else:
                live.append(invitation)
        return live

    async def _group_names(self, session: AsyncSession, invitations: List[Any]) -> Dict[int, str]:
        groups = await self._members.groups.get_many(session, list({inv.group_id for inv in invitations}))
        return {group.id: group.name for group in groups}

    async def list_pending_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        """Pending, unexpired invitations addressed to ``user_id``, newest first."""
        user_id = InputValidator.validate_user_id(user_id, "user_id")
        model = self.adapter.invitation_model

        async with DatabaseService.get_transaction() as session:
            live = await self._pending_with_lazy_expiry(session, model.invitee_id == user_id)
            names = await self._group_names(session, live)
            return [invitation_to_dict(inv, names.get(inv.group_id)) for inv in live]

    async def list_pending_for_group(self, group_id: int, actor_id: int) -> List[Dict[str, Any]]:
        """
        Pending invitations of a group. Visible to roles that may invite.

        Raises:
            NotFoundError: Group not found
            ForbiddenError: Actor may not invite in this group
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        model = self.adapter.invitation_model

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id)
            role = await self._members.active_role(session, group_id, actor_id)
            self._policy.require(self.adapter.kind, role, CommunityAction.INVITE)

            live = await self._pending_with_lazy_expiry(session, model.group_id == group_id)
            return [invitation_to_dict(inv, group.name) for inv in live]

    async def expire_overdue(self) -> int:
        """Sweep: transition every overdue pending invitation to expired. Returns the count."""
        model = self.adapter.invitation_model
        now = self.now()

        async with DatabaseService.get_transaction() as session:
            expired = await self._invitation_repo.update_where(
                session,
                {"status": InvitationStatus.EXPIRED},
                model.status == InvitationStatus.PENDING,
                model.expires_at <= now,
            )

        if expired:
            self.log_operation("expire_invitations", group_kind=self.adapter.kind.value, expired=expired)
            await self.emit_event(self._event("invitations_expired"), {"expired_count": expired})
        return expired

    async def claim_email_invitations(self, user_id: int, email: str) -> List[Dict[str, Any]]:
        """
        Bind pending e-mail invitations to a newly registered user.

        Invitations to groups the user already belongs to, or duplicating a
        pending id-based invitation, are revoked instead of bound.
        """
        user_id = InputValidator.validate_user_id(user_id, "user_id")
        email = InputValidator.validate_email(email, "email")
        model = self.adapter.invitation_model

        claimed: List[Dict[str, Any]] = []
        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            live = await self._pending_with_lazy_expiry(
                session, model.invitee_email == email, model.invitee_id.is_(None)
            )
            names = await self._group_names(session, live)
            now = self.now()

            for invitation in live:
                redundant = await self._members.get_active_member(
                    session, invitation.group_id, user_id
                ) or await self._find_pending_for(session, invitation.group_id, user_id, None)

                if redundant:
                    await self._invitation_repo.compare_and_set(
                        session,
                        invitation,
                        expected={"status": InvitationStatus.PENDING},
                        values={"status": InvitationStatus.REVOKED, "responded_at": now},
                    )
                    continue

                bound = await self._invitation_repo.compare_and_set(
                    session,
                    invitation,
                    expected={"status": InvitationStatus.PENDING, "invitee_id": None},
                    values={"invitee_id": user_id},
                )
                if not bound:
                    continue

                inviter_name = await self._notifications.display_name(invitation.inviter_id)
                group_name = names.get(invitation.group_id, "")
                title, body = self.adapter.render(
                    "invitation_received", inviter_name=inviter_name, group_name=group_name
                )
                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        user_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {
                            "invitation_id": invitation.id,
                            "group_id": invitation.group_id,
                            "kind": self.adapter.kind.value,
                        },
                    )
                )
                claimed.append(invitation_to_dict(invitation, group_name))

        if claimed:
            self.log_operation(
                "claim_email_invitations",
                group_kind=self.adapter.kind.value,
                user_id=user_id,
                claimed=len(claimed),
            )
        await self._notifications.announce(created_notifications)
        return claimed
