"""
MembershipService - Generic membership management for guilds and parties
========================================================================

Handles:
- Leaving a group (with leadership succession or dissolution where the
  group kind allows it)
- Assigning roles and removing members
- Transferring ownership/leadership
- Listing active members

Invariants
----------
- A non-empty group always has exactly one active owner/leader
- ``member_count`` equals the number of active memberships
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import MemberStatus
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy
    from src.modules.notification.service import NotificationService


def member_to_dict(member: Any) -> Dict[str, Any]:
    return {
        "group_id": member.group_id,
        "user_id": member.user_id,
        "role": member.role.value,
        "status": member.status.value,
        "joined_at": member.joined_at,
        "left_at": member.left_at,
    }


class MembershipService(BaseService):
    """
    Membership operations for one group kind.

    Business Logic:
    - Any active member may leave
    - Party leader leaving: earliest-joined remaining member becomes leader
    - Last member leaving: the group is dissolved, its pending invitations
      revoked and its pending join requests cancelled
    - Guild owner may only leave once nobody else remains
    - Only the owner/leader may assign roles, remove members or transfer
      leadership; the owner itself cannot be removed
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

    @property
    def _membership_label(self) -> str:
        return f"{self.adapter.label} membership"

    def _event(self, name: str) -> str:
        return f"{self.adapter.event_prefix}.{name}"

    def _role_rank(self, role: Any) -> int:
        ordered = list(self.adapter.role_enum)
        return ordered.index(role) if role in ordered else len(ordered)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    async def leave(self, group_id: int, user_id: int) -> Dict[str, Any]:
        """
        Leave a group.

        Returns:
            Dict with the new member count, the successor (if leadership
            passed) and whether the group was dissolved

        Raises:
            NotFoundError: Group not found or user not an active member
            ConflictError: Guild owner leaving while other members remain
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        user_id = InputValidator.validate_user_id(user_id, "user_id")

        successor_id: Optional[int] = None
        dissolved = False
        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id, for_update=True)
            member = await self._members.get_active_member(session, group_id, user_id, for_update=True)
            if member is None:
                raise NotFoundError(self._membership_label, f"{group_id}:{user_id}")

            self._policy.require(self.adapter.kind, member.role, CommunityAction.LEAVE)

            now = self.now()
            if member.role == self.adapter.owner_role:
                others = [m for m in await self._members.list_active(session, group_id) if m.user_id != user_id]

                if others and not self.adapter.auto_succession:
                    raise ConflictError(
                        self.adapter.label,
                        "the owner must transfer ownership before leaving",
                        details={"remaining_members": len(others)},
                    )

                if others:
                    successor = others[0]
                    await self._members.update_role(session, successor, self.adapter.owner_role)
                    successor_id = successor.user_id

                    title, body = self.adapter.render(
                        "leadership_transferred",
                        actor_name=await self._notifications.display_name(user_id),
                        group_name=group.name,
                    )
                    created_notifications.append(
                        await self._notifications.notify(
                            session,
                            successor_id,
                            self.adapter.notification_type,
                            title,
                            body,
                            {"group_id": group_id, "previous_owner_id": user_id},
                        )
                    )

            await self._members.deactivate(session, group, member, now)

            closed = {"revoked_invitations": 0, "cancelled_requests": 0}
            if group.member_count == 0 and self.adapter.dissolve_when_empty:
                closed = await self._members.dissolve(session, group, now)
                dissolved = True

            result = {
                "group_id": group_id,
                "user_id": user_id,
                "member_count": group.member_count,
                "successor_id": successor_id,
                "dissolved": dissolved,
            }

        self.log_operation(
            "leave",
            group_kind=self.adapter.kind.value,
            group_id=group_id,
            user_id=user_id,
            successor_id=successor_id,
            dissolved=dissolved,
        )
        await self.emit_event(self._event("member_left"), dict(result))
        if successor_id is not None:
            await self.emit_event(
                self._event("leadership_transferred"),
                {"group_id": group_id, "previous_owner_id": user_id, "new_owner_id": successor_id},
            )
        if dissolved:
            await self.emit_event(self._event("dissolved"), {"group_id": group_id, **closed})
        await self._notifications.announce(created_notifications)
        return result

    async def assign_role(self, group_id: int, actor_id: int, target_user_id: int, role: Any) -> Dict[str, Any]:
        """
        Change a member's role. The owner role moves only via ``transfer_leadership``.

        Raises:
            ValidationError: Unknown role, or the owner role requested
            ForbiddenError: Actor lacks ``assign_role``, or the target is the owner
            NotFoundError: Group not found or target not an active member
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        target_user_id = InputValidator.validate_user_id(target_user_id, "target_user_id")

        try:
            new_role = self.adapter.parse_role(role)
        except ValueError:
            valid = ", ".join(r.value for r in self.adapter.role_enum)
            raise ValidationError("role", f"Invalid role '{role}'. Must be one of: {valid}")

        if new_role == self.adapter.owner_role:
            raise ValidationError("role", "Use transfer_leadership to change the owner")

        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id, for_update=True)
            actor_role = await self._members.active_role(session, group_id, actor_id)
            self._policy.require(self.adapter.kind, actor_role, CommunityAction.ASSIGN_ROLE)

            target = await self._members.get_active_member(session, group_id, target_user_id, for_update=True)
            if target is None:
                raise NotFoundError(self._membership_label, f"{group_id}:{target_user_id}")

            if target.role == self.adapter.owner_role:
                raise ForbiddenError("assign_role", "the owner's role cannot be changed directly")

            previous_role = target.role
            if previous_role != new_role:
                await self._members.update_role(session, target, new_role)
                title, body = self.adapter.render("role_changed", group_name=group.name, role=new_role.value)
                created_notifications.append(
                    await self._notifications.notify(
                        session,
                        target_user_id,
                        self.adapter.notification_type,
                        title,
                        body,
                        {"group_id": group_id, "role": new_role.value},
                    )
                )

            result = member_to_dict(target)
            result["previous_role"] = previous_role.value

        if previous_role != new_role:
            self.log_operation(
                "assign_role",
                group_kind=self.adapter.kind.value,
                group_id=group_id,
                user_id=actor_id,
                target_user_id=target_user_id,
                role=new_role.value,
            )
            await self.emit_event(
                self._event("role_changed"),
                {
                    "group_id": group_id,
                    "user_id": target_user_id,
                    "previous_role": previous_role.value,
                    "role": new_role.value,
                    "changed_by": actor_id,
                },
            )
            await self._notifications.announce(created_notifications)
        return result

    async def remove_member(self, group_id: int, actor_id: int, target_user_id: int) -> Dict[str, Any]:
        """
        Remove another member from the group, releasing their seat.

        The removed user may rejoin later through a new invitation or join
        request.

        Raises:
            ValidationError: Removing oneself (use ``leave``)
            ForbiddenError: Actor lacks ``remove_member``, or the target is the owner
            NotFoundError: Group not found or target not an active member
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        target_user_id = InputValidator.validate_user_id(target_user_id, "target_user_id")

        if target_user_id == actor_id:
            raise ValidationError("target_user_id", "Use leave to remove yourself")

        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id, for_update=True)
            actor_role = await self._members.active_role(session, group_id, actor_id)
            self._policy.require(self.adapter.kind, actor_role, CommunityAction.REMOVE_MEMBER)

            target = await self._members.get_active_member(session, group_id, target_user_id, for_update=True)
            if target is None:
                raise NotFoundError(self._membership_label, f"{group_id}:{target_user_id}")

            if target.role == self.adapter.owner_role:
                raise ForbiddenError("remove_member", "the owner cannot be removed")

            await self._members.deactivate(session, group, target, self.now(), status=MemberStatus.REMOVED)

            title, body = self.adapter.render(
                "member_removed",
                actor_name=await self._notifications.display_name(actor_id),
                group_name=group.name,
            )
            created_notifications.append(
                await self._notifications.notify(
                    session,
                    target_user_id,
                    self.adapter.notification_type,
                    title,
                    body,
                    {"group_id": group_id, "removed_by": actor_id},
                )
            )

            result = member_to_dict(target)
            result["member_count"] = group.member_count
            result["removed_by"] = actor_id

        self.log_operation(
            "remove_member",
            group_kind=self.adapter.kind.value,
            group_id=group_id,
            user_id=actor_id,
            target_user_id=target_user_id,
        )
        await self.emit_event(
            self._event("member_removed"),
            {
                "group_id": group_id,
                "user_id": target_user_id,
                "removed_by": actor_id,
                "member_count": result["member_count"],
            },
        )
        await self._notifications.announce(created_notifications)
        return result

    async def transfer_leadership(self, group_id: int, actor_id: int, new_owner_id: int) -> Dict[str, Any]:
        """
        Hand the owner/leader role to another active member. The previous
        owner stays on as guild admin / party member.

        Raises:
            ValidationError: Transferring to oneself
            ForbiddenError: Actor is not the owner/leader
            NotFoundError: Group not found or new owner not an active member
        """
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        new_owner_id = InputValidator.validate_user_id(new_owner_id, "new_owner_id")

        if new_owner_id == actor_id:
            raise ValidationError("new_owner_id", "You already lead this group")

        created_notifications = []

        async with DatabaseService.get_transaction() as session:
            group = await self._members.get_group(session, group_id, for_update=True)
            actor = await self._members.get_active_member(session, group_id, actor_id, for_update=True)
            self._policy.require(
                self.adapter.kind,
                actor.role if actor is not None else None,
                CommunityAction.TRANSFER_LEADERSHIP,
            )

            target = await self._members.get_active_member(session, group_id, new_owner_id, for_update=True)
            if target is None:
                raise NotFoundError(self._membership_label, f"{group_id}:{new_owner_id}")

            former_owner_role = self.adapter.former_owner_role or self.adapter.default_role
            await self._members.update_role(session, actor, former_owner_role)
            await self._members.update_role(session, target, self.adapter.owner_role)

            title, body = self.adapter.render(
                "leadership_transferred",
                actor_name=await self._notifications.display_name(actor_id),
                group_name=group.name,
            )
            created_notifications.append(
                await self._notifications.notify(
                    session,
                    new_owner_id,
                    self.adapter.notification_type,
                    title,
                    body,
                    {"group_id": group_id, "previous_owner_id": actor_id},
                )
            )

            result = {
                "group_id": group_id,
                "previous_owner_id": actor_id,
                "former_owner_role": former_owner_role.value,
                "new_owner_id": new_owner_id,
            }

        self.log_operation(
            "transfer_leadership",
            group_kind=self.adapter.kind.value,
            group_id=group_id,
            user_id=actor_id,
            new_owner_id=new_owner_id,
        )
        await self.emit_event(self._event("leadership_transferred"), dict(result))
        await self._notifications.announce(created_notifications)
        return result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_members(self, group_id: int) -> List[Dict[str, Any]]:
        """Active members, owner first, then by role and join time."""
        group_id = InputValidator.validate_entity_id(group_id, "group_id")

        async with DatabaseService.get_session() as session:
            await self._members.get_group(session, group_id)
            members = await self._members.list_active(session, group_id)

        members.sort(key=lambda m: (self._role_rank(m.role), m.joined_at, m.id))
        return [member_to_dict(m) for m in members]

    async def get_membership(self, group_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        group_id = InputValidator.validate_entity_id(group_id, "group_id")
        user_id = InputValidator.validate_user_id(user_id, "user_id")

        async with DatabaseService.get_session() as session:
            member = await self._members.get_active_member(session, group_id, user_id)
        return member_to_dict(member) if member is not None else None
