"""
Membership store shared by guilds and parties.

All writes keep ``member_count`` equal to the number of active rows in the
same transaction, and never let it exceed ``max_members``.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from src.database.models.enums import InvitationStatus, JoinRequestStatus, MemberStatus
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.exceptions import ConflictError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.modules.community.adapters import GroupAdapter


class MembershipRepository(BaseRepository[Any]):
    """Membership rows for one group kind, plus the group's member counter."""

    def __init__(self, adapter: GroupAdapter, logger: Logger) -> None:
        super().__init__(adapter.member_model, logger)
        self.adapter = adapter
        self.groups = BaseRepository[Any](adapter.group_model, logger)
        self.invitations = BaseRepository[Any](adapter.invitation_model, logger)
        self.join_requests: Optional[BaseRepository[Any]] = None
        if adapter.join_request_model is not None:
            self.join_requests = BaseRepository[Any](adapter.join_request_model, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_group(self, session: AsyncSession, group_id: int, *, for_update: bool = False) -> Any:
        """Load a group or raise ``NotFoundError``."""
        if for_update:
            group = await self.groups.get_for_update(session, group_id)
        else:
            group = await self.groups.get(session, group_id)
        if group is None:
            raise NotFoundError(self.adapter.label, group_id)
        return group

    def ensure_open(self, group: Any, label: Optional[str] = None) -> None:
        if getattr(group, "dissolved_at", None) is not None:
            raise ConflictError(label or self.adapter.label, f"{self.adapter.label.lower()} has been dissolved")

    async def get_member(
        self,
        session: AsyncSession,
        group_id: int,
        user_id: int,
        *,
        for_update: bool = False,
    ) -> Optional[Any]:
        model = self.model_class
        return await self.find_one_where(
            session,
            model.group_id == group_id,
            model.user_id == user_id,
            for_update=for_update,
        )

    async def get_active_member(
        self,
        session: AsyncSession,
        group_id: int,
        user_id: int,
        *,
        for_update: bool = False,
    ) -> Optional[Any]:
        member = await self.get_member(session, group_id, user_id, for_update=for_update)
        if member is None or member.status != MemberStatus.ACTIVE:
            return None
        return member

    async def active_role(self, session: AsyncSession, group_id: int, user_id: int) -> Optional[enum.Enum]:
        """The user's role, or None for non-members (which the policy always denies)."""
        member = await self.get_active_member(session, group_id, user_id)
        return member.role if member is not None else None

    async def list_active(self, session: AsyncSession, group_id: int) -> List[Any]:
        """Active members, earliest-joined first."""
        model = self.model_class
        return await self.find_many_where(
            session,
            model.group_id == group_id,
            model.status == MemberStatus.ACTIVE,
            order_by=[model.joined_at.asc(), model.id.asc()],
        )

    async def has_active_membership_elsewhere(self, session: AsyncSession, user_id: int, group_id: int) -> bool:
        model = self.model_class
        return await self.exists(
            session,
            model.user_id == user_id,
            model.status == MemberStatus.ACTIVE,
            model.group_id != group_id,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def activate(
        self,
        session: AsyncSession,
        group: Any,
        user_id: int,
        role: enum.Enum,
        now: Any,
    ) -> Any:
        """
        Create or reactivate the (group, user) membership under the member cap.

        Raises:
            ConflictError: Group dissolved, already active, active in another
                group of an exclusive kind, or the group is full
        """
        label = self.adapter.label
        self.ensure_open(group, f"{label} membership")
        existing = await self.get_member(session, group.id, user_id, for_update=True)

        if existing is not None and existing.status == MemberStatus.ACTIVE:
            raise ConflictError(f"{label} membership", "user is already an active member")

        if self.adapter.exclusive_membership and await self.has_active_membership_elsewhere(
            session, user_id, group.id
        ):
            raise ConflictError(f"{label} membership", f"user already belongs to another {label.lower()}")

        seated = await self.groups.increment(session, group, "member_count", 1, ceiling_column="max_members")
        if not seated:
            raise ConflictError(label, "member limit reached", details={"max_members": group.max_members})

        if existing is not None:
            reactivated = await self.compare_and_set(
                session,
                existing,
                expected={"status": existing.status},
                values={"status": MemberStatus.ACTIVE, "role": role, "joined_at": now, "left_at": None},
            )
            if not reactivated:
                raise ConflictError(f"{label} membership", "membership changed concurrently")
            member = existing
        else:
            member = self.model_class(
                group_id=group.id,
                user_id=user_id,
                role=role,
                status=MemberStatus.ACTIVE,
                joined_at=now,
            )
            self.add(session, member)
            try:
                await self.flush(session)
            except IntegrityError as exc:
                raise ConflictError(f"{label} membership", "membership created concurrently") from exc

        self.log.debug(
            "Membership activated",
            extra={"group_kind": self.adapter.kind.value, "group_id": group.id, "member_user_id": user_id},
        )
        return member

    async def deactivate(
        self,
        session: AsyncSession,
        group: Any,
        member: Any,
        now: Any,
        status: MemberStatus = MemberStatus.LEFT,
    ) -> None:
        """Mark an active membership as left (or removed) and release its seat."""
        label = self.adapter.label
        left = await self.compare_and_set(
            session,
            member,
            expected={"status": MemberStatus.ACTIVE},
            values={"status": status, "left_at": now},
        )
        if not left:
            raise ConflictError(f"{label} membership", "membership is no longer active")

        released = await self.groups.increment(session, group, "member_count", -1, floor=0)
        if not released:
            raise ConflictError(label, "member count out of sync")

    async def update_role(self, session: AsyncSession, member: Any, role: enum.Enum) -> None:
        changed = await self.compare_and_set(
            session,
            member,
            expected={"status": MemberStatus.ACTIVE, "role": member.role},
            values={"role": role},
        )
        if not changed:
            raise ConflictError(f"{self.adapter.label} membership", "membership changed concurrently")

    async def dissolve(self, session: AsyncSession, group: Any, now: Any) -> Dict[str, int]:
        """
        Close an empty group: stamp ``dissolved_at`` and close everything
        still pending against it.

        Returns:
            Counts of revoked invitations and cancelled join requests
        """
        group.dissolved_at = now

        invitation_model = self.adapter.invitation_model
        revoked = await self.invitations.update_where(
            session,
            {"status": InvitationStatus.REVOKED, "responded_at": now},
            invitation_model.group_id == group.id,
            invitation_model.status == InvitationStatus.PENDING,
        )

        cancelled = 0
        request_model = self.adapter.join_request_model
        if self.join_requests is not None:
            cancelled = await self.join_requests.update_where(
                session,
                {"status": JoinRequestStatus.CANCELLED, "responded_at": now},
                request_model.group_id == group.id,
                request_model.status == JoinRequestStatus.PENDING,
            )

        self.log.debug(
            "Group dissolved",
            extra={
                "group_kind": self.adapter.kind.value,
                "group_id": group.id,
                "revoked_invitations": revoked,
                "cancelled_requests": cancelled,
            },
        )
        return {"revoked_invitations": revoked, "cancelled_requests": cancelled}
