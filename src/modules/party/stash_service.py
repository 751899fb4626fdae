"""
PartyStashService - Notes shared into a party's common stash
============================================================

Any active party member may share, update, delete and list stash items;
authorship of an item grants nothing extra.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.social.party_stash_item import PartyStashItem
from src.modules.community.membership_repository import MembershipRepository
from src.modules.community.policy import CommunityAction, GroupKind
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter
    from src.modules.community.policy import AuthorizationPolicy


def stash_item_to_dict(item: PartyStashItem) -> Dict[str, Any]:
    return {
        "item_id": item.id,
        "party_id": item.party_id,
        "original_note_id": item.original_note_id,
        "shared_by": item.shared_by,
        "title": item.title,
        "content": dict(item.content or {}),
        "tags": list(item.tags or []),
        "created_at": item.created_at,
        "updated_at": item.updated_at,
    }


class PartyStashService(BaseService):
    """
    Party stash operations.

    Business Logic:
    - Every operation requires ``manage_stash`` (any active member by default)
    - Dissolved parties accept no new items
    - ``content`` is a key -> value mapping; ``original_note_id`` records
      where the note was copied from
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
        self._stash_repo = BaseRepository[PartyStashItem](PartyStashItem, self.log)

    def _validate_title(self, title: Any) -> str:
        max_length = self.get_config("community.stash.max_title_length", default=200)
        return InputValidator.validate_string(title, "title", min_length=1, max_length=max_length)

    def _validate_tags(self, tags: Any) -> List[str]:
        max_count = self.get_config("community.stash.max_tags", default=10)
        return InputValidator.validate_tags(tags, "tags", max_count=max_count)

    async def _require_member(self, session: AsyncSession, party_id: int, actor_id: int) -> None:
        role = await self._members.active_role(session, party_id, actor_id)
        self._policy.require(GroupKind.PARTY, role, CommunityAction.MANAGE_STASH)

    async def _load_item(self, session: AsyncSession, item_id: int) -> PartyStashItem:
        item = await self._stash_repo.get_for_update(session, item_id)
        if item is None:
            raise NotFoundError("Party stash item", item_id)
        return item

    async def share_item(
        self,
        party_id: int,
        actor_id: int,
        title: str,
        content: Dict[str, Any],
        tags: Optional[List[str]] = None,
        original_note_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Share a note into the stash.

        Raises:
            ValidationError: Bad title, content or tags
            NotFoundError: Party not found
            ForbiddenError: Actor is not an active member
            ConflictError: Party has been dissolved
        """
        party_id = InputValidator.validate_entity_id(party_id, "party_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        title = self._validate_title(title)
        content = InputValidator.validate_mapping(content, "content")
        tags = self._validate_tags(tags)
        if original_note_id is not None:
            original_note_id = InputValidator.validate_entity_id(original_note_id, "original_note_id")

        async with DatabaseService.get_transaction() as session:
            party = await self._members.get_group(session, party_id)
            self._members.ensure_open(party)
            await self._require_member(session, party_id, actor_id)

            item = PartyStashItem(
                party_id=party_id,
                original_note_id=original_note_id,
                shared_by=actor_id,
                title=title,
                content=content,
                tags=tags,
            )
            self._stash_repo.add(session, item)
            await self._stash_repo.flush(session)
            result = stash_item_to_dict(item)

        self.log_operation("share_stash_item", group_id=party_id, user_id=actor_id, item_id=result["item_id"])
        await self.emit_event(
            "party.stash_item_shared",
            {"item_id": result["item_id"], "party_id": party_id, "shared_by": actor_id},
        )
        return result

    async def update_item(
        self,
        item_id: int,
        actor_id: int,
        title: Optional[str] = None,
        content: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Update a stash item. Omitted fields stay unchanged.

        Raises:
            ValidationError: Nothing to change, or a bad field
            NotFoundError: Item not found
            ForbiddenError: Actor is not an active member of the item's party
        """
        item_id = InputValidator.validate_entity_id(item_id, "item_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        changes: Dict[str, Any] = {}
        if title is not None:
            changes["title"] = self._validate_title(title)
        if content is not None:
            changes["content"] = InputValidator.validate_mapping(content, "content")
        if tags is not None:
            changes["tags"] = self._validate_tags(tags)
        if not changes:
            raise ValidationError("item", "Nothing to update")

        async with DatabaseService.get_transaction() as session:
            item = await self._load_item(session, item_id)
            await self._require_member(session, item.party_id, actor_id)

            for field_name, value in changes.items():
                setattr(item, field_name, value)
            await self._stash_repo.flush(session)
            result = stash_item_to_dict(item)

        self.log_operation("update_stash_item", group_id=result["party_id"], user_id=actor_id, item_id=item_id)
        await self.emit_event(
            "party.stash_item_updated",
            {"item_id": item_id, "party_id": result["party_id"], "updated_by": actor_id, "fields": sorted(changes)},
        )
        return result

    async def delete_item(self, item_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Item not found
            ForbiddenError: Actor is not an active member of the item's party
        """
        item_id = InputValidator.validate_entity_id(item_id, "item_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            item = await self._load_item(session, item_id)
            await self._require_member(session, item.party_id, actor_id)
            party_id = item.party_id
            await self._stash_repo.delete(session, item)

        self.log_operation("delete_stash_item", group_id=party_id, user_id=actor_id, item_id=item_id)
        await self.emit_event(
            "party.stash_item_deleted",
            {"item_id": item_id, "party_id": party_id, "deleted_by": actor_id},
        )
        return {"item_id": item_id, "party_id": party_id, "deleted": True}

    async def list_items(self, party_id: int, actor_id: int) -> List[Dict[str, Any]]:
        """Stash items of a party, newest first."""
        party_id = InputValidator.validate_entity_id(party_id, "party_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_session() as session:
            await self._members.get_group(session, party_id)
            await self._require_member(session, party_id, actor_id)

            rows = await self._stash_repo.find_many_where(
                session,
                PartyStashItem.party_id == party_id,
                order_by=[PartyStashItem.created_at.desc(), PartyStashItem.id.desc()],
            )
            return [stash_item_to_dict(row) for row in rows]
