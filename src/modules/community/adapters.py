"""
Group adapters
==============

One ``GroupAdapter`` per group kind tells the generic invitation and
membership engines which tables, roles and notification wording to use.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Type

from src.database.models.enums import GuildRole, NotificationType, PartyRole
from src.database.models.social.guild import Guild
from src.database.models.social.guild_invitation import GuildInvitation
from src.database.models.social.guild_join_request import GuildJoinRequest
from src.database.models.social.guild_member import GuildMember
from src.database.models.social.party import Party
from src.database.models.social.party_invitation import PartyInvitation
from src.database.models.social.party_member import PartyMember
from src.modules.community.policy import GroupKind

# (title, message) pairs, formatted with str.format(**context).
# A rendered title must fit notification.service.MAX_TITLE_LENGTH (200 characters).
NotificationTemplates = Dict[str, Tuple[str, str]]


@dataclass(frozen=True)
class GroupAdapter:
    """
    Per-kind wiring for the generic engines.

    ``exclusive_membership`` limits a user to one active group of this kind.
    ``auto_succession`` hands the owner role to the earliest-joined member when
    the owner leaves; without it the owner must transfer first.
    ``dissolve_when_empty`` marks the group dissolved when its last member leaves;
    pending invitations and (where the kind has them) join requests are closed
    with it.
    """

    kind: GroupKind
    label: str
    group_model: Type[Any]
    member_model: Type[Any]
    invitation_model: Type[Any]
    role_enum: Type[enum.Enum]
    default_role: enum.Enum
    owner_role: enum.Enum
    notification_type: NotificationType
    config_section: str
    former_owner_role: Optional[enum.Enum] = None
    join_request_model: Optional[Type[Any]] = None
    exclusive_membership: bool = False
    auto_succession: bool = False
    dissolve_when_empty: bool = False
    templates: NotificationTemplates = field(default_factory=dict)

    @property
    def event_prefix(self) -> str:
        return self.kind.value

    def parse_role(self, value: Any) -> enum.Enum:
        """Map a raw role value onto this kind's role enum, or raise ValueError."""
        if isinstance(value, self.role_enum):
            return value
        return self.role_enum(str(value).strip().lower())

    def render(self, template_key: str, **context: Any) -> Tuple[str, str]:
        title, message = self.templates[template_key]
        return title.format(**context), message.format(**context)


_GUILD_TEMPLATES: NotificationTemplates = {
    "invitation_received": (
        "Guild invitation",
        "{inviter_name} invited you to join the guild {group_name}.",
    ),
    "invitation_accepted": (
        "Invitation accepted",
        "{actor_name} accepted your invitation to {group_name}.",
    ),
    "invitation_declined": (
        "Invitation declined",
        "{actor_name} declined your invitation to {group_name}.",
    ),
    "role_changed": (
        "Guild role updated",
        "Your role in {group_name} is now {role}.",
    ),
    "leadership_transferred": (
        "You now own {group_name}",
        "{actor_name} transferred guild ownership to you.",
    ),
    "member_removed": (
        "Removed from {group_name}",
        "{actor_name} removed you from the guild {group_name}.",
    ),
}

_PARTY_TEMPLATES: NotificationTemplates = {
    "invitation_received": (
        "Party invitation",
        "{inviter_name} invited you to the study party {group_name}.",
    ),
    "invitation_accepted": (
        "Invitation accepted",
        "{actor_name} joined {group_name}.",
    ),
    "invitation_declined": (
        "Invitation declined",
        "{actor_name} declined your invitation to {group_name}.",
    ),
    "role_changed": (
        "Party role updated",
        "Your role in {group_name} is now {role}.",
    ),
    "leadership_transferred": (
        "You now lead {group_name}",
        "Party leadership passed to you.",
    ),
    "member_removed": (
        "Removed from {group_name}",
        "{actor_name} removed you from the study party {group_name}.",
    ),
}


GUILD_ADAPTER = GroupAdapter(
    kind=GroupKind.GUILD,
    label="Guild",
    group_model=Guild,
    member_model=GuildMember,
    invitation_model=GuildInvitation,
    role_enum=GuildRole,
    default_role=GuildRole.MEMBER,
    owner_role=GuildRole.OWNER,
    notification_type=NotificationType.GUILD,
    config_section="guilds",
    former_owner_role=GuildRole.ADMIN,
    join_request_model=GuildJoinRequest,
    exclusive_membership=True,
    dissolve_when_empty=True,
    templates=_GUILD_TEMPLATES,
)

PARTY_ADAPTER = GroupAdapter(
    kind=GroupKind.PARTY,
    label="Party",
    group_model=Party,
    member_model=PartyMember,
    invitation_model=PartyInvitation,
    role_enum=PartyRole,
    default_role=PartyRole.MEMBER,
    owner_role=PartyRole.LEADER,
    notification_type=NotificationType.PARTY,
    config_section="parties",
    former_owner_role=PartyRole.MEMBER,
    auto_succession=True,
    dissolve_when_empty=True,
    templates=_PARTY_TEMPLATES,
)
