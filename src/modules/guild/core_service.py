"""
GuildService - Business logic for core guild management
========================================================

Handles:
- Guild creation (the creator becomes the owner)
- Guild lookup
- Settings updates by the owner
- Merit points (atomic increments)

Membership after creation goes through the generic community engines
(invitations, join requests, MembershipService).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy.exc import IntegrityError

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import GuildRole
from src.database.models.social.guild import Guild
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction, GroupKind
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ConflictError, NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 2000


def guild_to_dict(guild: Guild) -> Dict[str, Any]:
    return {
        "guild_id": guild.id,
        "name": guild.name,
        "description": guild.description,
        "is_public": guild.is_public,
        "requires_approval": guild.requires_approval,
        "creator_id": guild.creator_id,
        "member_count": guild.member_count,
        "max_members": guild.max_members,
        "merit_points": guild.merit_points,
        "dissolved": guild.dissolved_at is not None,
        "dissolved_at": guild.dissolved_at,
        "created_at": guild.created_at,
    }


class GuildService(BaseService):
    """
    GuildService handles core guild management operations.

    Business Logic:
    - Guild names are unique
    - A user who already belongs to a guild cannot found another
    - ``max_members`` defaults to ``community.guilds.default_max_members`` and
      may not exceed ``community.guilds.max_members_limit``
    - Only the owner changes settings; the cap never drops below the
      current member count
    - Merit points only move through a single SQL increment
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        adapter: GroupAdapter,
        policy: AuthorizationPolicy,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._policy = policy
        self._members = MembershipRepository(adapter, self.log)
        self._guild_repo = self._members.groups

    def _validate_max_members(self, max_members: Any) -> int:
        limit = self.get_config("community.guilds.max_members_limit", default=500)
        return InputValidator.validate_integer(max_members, "max_members", min_value=2, max_value=limit)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    async def create_guild(
        self,
        creator_id: int,
        name: str,
        description: Optional[str] = None,
        is_public: bool = True,
        requires_approval: bool = False,
        max_members: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create a new guild with ``creator_id`` as its owner.

        Args:
            creator_id: User founding the guild
            name: Unique guild name
            description: Optional description
            is_public: Whether the guild is listed and open to join requests
            requires_approval: Whether join requests and posts need moderation
            max_members: Member cap, creator included

        Returns:
            Dict with guild data

        Raises:
            ValidationError: Bad name, description or member cap
            ConflictError: Name taken, or creator already in a guild
        """
        creator_id = InputValidator.validate_user_id(creator_id, "creator_id")
        name = InputValidator.validate_string(name, "name", min_length=MIN_NAME_LENGTH, max_length=MAX_NAME_LENGTH)
        description = InputValidator.validate_optional_string(
            description, "description", max_length=MAX_DESCRIPTION_LENGTH
        )

        if max_members is None:
            max_members = self.get_config("community.guilds.default_max_members", default=50)
        max_members = self._validate_max_members(max_members)

        async with DatabaseService.get_transaction() as session:
            if await self._guild_repo.exists(session, Guild.name == name):
                raise ConflictError("Guild", f"guild name '{name}' is already taken")

            guild = Guild(
                name=name,
                description=description,
                is_public=bool(is_public),
                requires_approval=bool(requires_approval),
                creator_id=creator_id,
                member_count=0,
                max_members=max_members,
                merit_points=0,
            )
            self._guild_repo.add(session, guild)
            try:
                await self._guild_repo.flush(session)
            except IntegrityError as exc:
                raise ConflictError("Guild", f"guild name '{name}' is already taken") from exc

            await self._members.activate(session, guild, creator_id, GuildRole.OWNER, self.now())
            result = guild_to_dict(guild)

        self.log_operation("create_guild", user_id=creator_id, group_id=result["guild_id"], guild_name=name)
        await self.emit_event(
            "guild.created",
            {"guild_id": result["guild_id"], "name": name, "creator_id": creator_id},
        )
        return result

    async def get_guild(self, guild_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Guild not found
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")

        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)
            return guild_to_dict(guild)

    async def update_settings(
        self,
        guild_id: int,
        actor_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_public: Optional[bool] = None,
        requires_approval: Optional[bool] = None,
        max_members: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Change guild settings. ``None`` leaves a field unchanged; a blank
        description clears it.

        Returns:
            Dict with guild data plus ``changed_fields``

        Raises:
            ValidationError: Nothing to change, bad values, or ``max_members``
                below the current member count
            NotFoundError: Guild not found
            ForbiddenError: Actor lacks ``update_settings``
            ConflictError: Name taken, or guild dissolved
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        updates: Dict[str, Any] = {}
        if name is not None:
            updates["name"] = InputValidator.validate_string(
                name, "name", min_length=MIN_NAME_LENGTH, max_length=MAX_NAME_LENGTH
            )
        if description is not None:
            updates["description"] = InputValidator.validate_optional_string(
                description, "description", max_length=MAX_DESCRIPTION_LENGTH
            )
        if is_public is not None:
            updates["is_public"] = bool(is_public)
        if requires_approval is not None:
            updates["requires_approval"] = bool(requires_approval)
        if max_members is not None:
            updates["max_members"] = self._validate_max_members(max_members)

        if not updates:
            raise ValidationError("settings", "Provide at least one setting to change")

        async with DatabaseService.get_transaction() as session:
            guild = await self._members.get_group(session, guild_id, for_update=True)
            self._members.ensure_open(guild)

            actor_role = await self._members.active_role(session, guild_id, actor_id)
            self._policy.require(GroupKind.GUILD, actor_role, CommunityAction.UPDATE_SETTINGS)

            if "max_members" in updates and updates["max_members"] < guild.member_count:
                raise ValidationError(
                    "max_members",
                    f"Cannot be lower than the current member count ({guild.member_count})",
                )

            if "name" in updates and updates["name"] != guild.name:
                if await self._guild_repo.exists(session, Guild.name == updates["name"], Guild.id != guild_id):
                    raise ConflictError("Guild", f"guild name '{updates['name']}' is already taken")

            changed = sorted(field for field, value in updates.items() if getattr(guild, field) != value)
            for field in changed:
                setattr(guild, field, updates[field])

            try:
                await self._guild_repo.flush(session)
            except IntegrityError as exc:
                raise ConflictError("Guild", f"guild name '{updates.get('name')}' is already taken") from exc

            result = guild_to_dict(guild)
            result["changed_fields"] = changed

        if changed:
            self.log_operation("update_guild_settings", group_id=guild_id, user_id=actor_id, changed_fields=changed)
            await self.emit_event(
                "guild.settings_updated",
                {"guild_id": guild_id, "updated_by": actor_id, "changed_fields": changed},
            )
        return result

    # -------------------------------------------------------------------------
    # Merit points
    # -------------------------------------------------------------------------

    async def award_merit_points(self, guild_id: int, points: int) -> Dict[str, Any]:
        """
        Add (or, with a negative value, deduct) merit points.

        The balance never drops below zero.

        Raises:
            NotFoundError: Guild not found
            ConflictError: Deduction would make the balance negative
        """
        guild_id = InputValidator.validate_entity_id(guild_id, "guild_id")
        points = InputValidator.validate_integer(points, "points", min_value=-1_000_000, max_value=1_000_000)

        async with DatabaseService.get_transaction() as session:
            guild = await self._guild_repo.get(session, guild_id)
            if guild is None:
                raise NotFoundError("Guild", guild_id)

            applied = await self._guild_repo.increment(session, guild, "merit_points", points, floor=0)
            if not applied:
                raise ConflictError("Guild", "merit points cannot go negative", details={"points": points})

            merit_points = guild.merit_points

        self.log_operation("award_merit_points", group_id=guild_id, points=points, merit_points=merit_points)
        await self.emit_event(
            "guild.merit_awarded",
            {"guild_id": guild_id, "points": points, "merit_points": merit_points},
        )
        return {"guild_id": guild_id, "points": points, "merit_points": merit_points}
