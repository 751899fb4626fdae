"""
PartyService - Business logic for study parties
===============================================

Handles:
- Party creation (the creator becomes the leader)
- Party lookup
- Joining a public party without an invitation

Leaving, succession and dissolution live in the generic MembershipService.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.enums import InvitationStatus, PartyRole
from src.database.models.social.party import Party
from src.database.models.social.party_invitation import PartyInvitation
from src.modules.community.membership_repository import MembershipRepository
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ForbiddenError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.community.adapters import GroupAdapter

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000


def party_to_dict(party: Party) -> Dict[str, Any]:
    return {
        "party_id": party.id,
        "name": party.name,
        "description": party.description,
        "is_public": party.is_public,
        "creator_id": party.creator_id,
        "member_count": party.member_count,
        "max_members": party.max_members,
        "dissolved": party.dissolved_at is not None,
        "dissolved_at": party.dissolved_at,
        "created_at": party.created_at,
    }


class PartyService(BaseService):
    """
    PartyService handles party lifecycle operations.

    Business Logic:
    - Anyone may create a party and lead it
    - ``max_members`` defaults to ``community.parties.default_max_members``
    - Public parties can be joined directly; private ones need an invitation
    - Joining directly declines the user's pending invitations to that party
    - Dissolved parties accept no new members
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        adapter: GroupAdapter,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._members = MembershipRepository(adapter, self.log)
        self._party_repo = self._members.groups
        self._invitation_repo = BaseRepository[PartyInvitation](PartyInvitation, self.log)

    async def create_party(
        self,
        creator_id: int,
        name: str,
        description: Optional[str] = None,
        is_public: bool = False,
        max_members: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Create a party led by ``creator_id``.

        Raises:
            ValidationError: Bad name, description or member cap
        """
        creator_id = InputValidator.validate_user_id(creator_id, "creator_id")
        name = InputValidator.validate_string(name, "name", min_length=1, max_length=MAX_NAME_LENGTH)
        description = InputValidator.validate_optional_string(
            description, "description", max_length=MAX_DESCRIPTION_LENGTH
        )

        limit = self.get_config("community.parties.max_members_limit", default=20)
        if max_members is None:
            max_members = self.get_config("community.parties.default_max_members", default=6)
        max_members = InputValidator.validate_integer(max_members, "max_members", min_value=2, max_value=limit)

        async with DatabaseService.get_transaction() as session:
            party = Party(
                name=name,
                description=description,
                is_public=bool(is_public),
                creator_id=creator_id,
                member_count=0,
                max_members=max_members,
            )
            self._party_repo.add(session, party)
            await self._party_repo.flush(session)

            await self._members.activate(session, party, creator_id, PartyRole.LEADER, self.now())
            result = party_to_dict(party)

        self.log_operation("create_party", user_id=creator_id, group_id=result["party_id"])
        await self.emit_event(
            "party.created",
            {"party_id": result["party_id"], "name": name, "creator_id": creator_id, "is_public": result["is_public"]},
        )
        return result

    async def get_party(self, party_id: int) -> Dict[str, Any]:
        party_id = InputValidator.validate_entity_id(party_id, "party_id")

        async with DatabaseService.get_session() as session:
            party = await self._party_repo.get(session, party_id)
            if party is None:
                raise NotFoundError("Party", party_id)
            return party_to_dict(party)

    async def join_public_party(self, party_id: int, user_id: int) -> Dict[str, Any]:
        """
        Join a public party as a member.

        Raises:
            NotFoundError: Party not found
            ForbiddenError: Party is private
            ConflictError: Dissolved, full, or already a member
        """
        party_id = InputValidator.validate_entity_id(party_id, "party_id")
        user_id = InputValidator.validate_user_id(user_id, "user_id")

        async with DatabaseService.get_transaction() as session:
            party = await self._members.get_group(session, party_id, for_update=True)

            if not party.is_public:
                raise ForbiddenError("join_party", "this party is private; an invitation from the leader is required")
            self._members.ensure_open(party)

            now = self.now()
            member = await self._members.activate(session, party, user_id, PartyRole.MEMBER, now)

            declined = await self._invitation_repo.update_where(
                session,
                {"status": InvitationStatus.DECLINED, "responded_at": now},
                PartyInvitation.party_id == party_id,
                PartyInvitation.invitee_id == user_id,
                PartyInvitation.status == InvitationStatus.PENDING,
            )

            result = {
                "party_id": party_id,
                "user_id": user_id,
                "role": member.role.value,
                "member_count": party.member_count,
                "declined_invitations": declined,
            }

        self.log_operation("join_public_party", group_id=party_id, user_id=user_id, declined_invitations=declined)
        await self.emit_event(
            "party.member_joined",
            {"party_id": party_id, "user_id": user_id, "via": "public", "member_count": result["member_count"]},
        )
        return result
