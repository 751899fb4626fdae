"""
Community authorization policy
==============================

Table-driven role checks for guilds and parties.

- ``DEFAULT_PERMISSIONS[kind][role]`` lists the actions each role may perform
- ``community.permissions.<kind>.<role>`` in config replaces a role's list
- Resource flags layer on top of the role check:
  * LOCK_GUARDED_ACTIONS are denied on a locked resource
  * AUTHOR_BOUND_ACTIONS require the actor to be the author
- A missing role (non-member) is always denied

``evaluate()`` is a pure function over a resolved table; ``AuthorizationPolicy``
resolves the table from config and raises ``ForbiddenError`` on denial.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Mapping, Optional

from src.core.exceptions import ConfigurationError
from src.database.models.enums import GuildRole, PartyRole
from src.modules.shared.exceptions import ForbiddenError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager


class GroupKind(str, enum.Enum):
    GUILD = "guild"
    PARTY = "party"


class CommunityAction(str, enum.Enum):
    INVITE = "invite"
    REVOKE_INVITATION = "revoke_invitation"
    REVIEW_JOIN_REQUEST = "review_join_request"

    CREATE_POST = "create_post"
    EDIT_OWN_POST = "edit_own_post"
    DELETE_OWN_POST = "delete_own_post"
    COMMENT = "comment"
    EDIT_OWN_COMMENT = "edit_own_comment"
    DELETE_OWN_COMMENT = "delete_own_comment"
    LIKE = "like"

    PIN_POST = "pin_post"
    LOCK_POST = "lock_post"
    FORCE_DELETE_POST = "force_delete_post"
    FORCE_DELETE_COMMENT = "force_delete_comment"
    SET_ANNOUNCEMENT = "set_announcement"
    REVIEW_POST = "review_post"

    ASSIGN_ROLE = "assign_role"
    REMOVE_MEMBER = "remove_member"
    UPDATE_SETTINGS = "update_settings"
    TRANSFER_LEADERSHIP = "transfer_leadership"
    MANAGE_STASH = "manage_stash"
    LEAVE = "leave"


LOCK_GUARDED_ACTIONS: FrozenSet[CommunityAction] = frozenset(
    {
        CommunityAction.EDIT_OWN_POST,
        CommunityAction.DELETE_OWN_POST,
        CommunityAction.COMMENT,
        CommunityAction.LIKE,
        CommunityAction.EDIT_OWN_COMMENT,
        CommunityAction.DELETE_OWN_COMMENT,
    }
)

AUTHOR_BOUND_ACTIONS: FrozenSet[CommunityAction] = frozenset(
    {
        CommunityAction.EDIT_OWN_POST,
        CommunityAction.DELETE_OWN_POST,
        CommunityAction.EDIT_OWN_COMMENT,
        CommunityAction.DELETE_OWN_COMMENT,
    }
)

PermissionTable = Mapping[str, FrozenSet[CommunityAction]]

_MEMBER_CONTENT_ACTIONS = frozenset(
    {
        CommunityAction.CREATE_POST,
        CommunityAction.EDIT_OWN_POST,
        CommunityAction.DELETE_OWN_POST,
        CommunityAction.COMMENT,
        CommunityAction.EDIT_OWN_COMMENT,
        CommunityAction.DELETE_OWN_COMMENT,
        CommunityAction.LIKE,
        CommunityAction.LEAVE,
    }
)

_GUILD_OWNER_ONLY = frozenset(
    {
        CommunityAction.ASSIGN_ROLE,
        CommunityAction.TRANSFER_LEADERSHIP,
        CommunityAction.REMOVE_MEMBER,
        CommunityAction.UPDATE_SETTINGS,
    }
)

DEFAULT_PERMISSIONS: Dict[GroupKind, PermissionTable] = {
    GroupKind.GUILD: {
        GuildRole.OWNER.value: frozenset(CommunityAction),
        GuildRole.ADMIN.value: frozenset(CommunityAction) - _GUILD_OWNER_ONLY,
        GuildRole.MEMBER.value: _MEMBER_CONTENT_ACTIONS,
    },
    GroupKind.PARTY: {
        PartyRole.LEADER.value: frozenset(
            {
                CommunityAction.INVITE,
                CommunityAction.REVOKE_INVITATION,
                CommunityAction.ASSIGN_ROLE,
                CommunityAction.TRANSFER_LEADERSHIP,
                CommunityAction.REMOVE_MEMBER,
                CommunityAction.MANAGE_STASH,
                CommunityAction.LEAVE,
            }
        ),
        PartyRole.MEMBER.value: frozenset({CommunityAction.MANAGE_STASH, CommunityAction.LEAVE}),
    },
}


@dataclass(frozen=True)
class ResourceFlags:
    """Moderation state of the resource an action targets."""

    is_author: bool = True
    is_locked: bool = False


NO_FLAGS = ResourceFlags()


def _role_key(role: Any) -> Optional[str]:
    if role is None:
        return None
    return role.value if isinstance(role, enum.Enum) else str(role)


def evaluate(
    table: PermissionTable,
    role: Any,
    action: CommunityAction,
    flags: ResourceFlags = NO_FLAGS,
) -> bool:
    """
    Decide whether ``role`` may perform ``action`` on a resource with ``flags``.

    Pure: no I/O, no config lookups.
    """
    role_key = _role_key(role)
    if role_key is None:
        return False

    if action not in table.get(role_key, frozenset()):
        return False

    if action in LOCK_GUARDED_ACTIONS and flags.is_locked:
        return False

    if action in AUTHOR_BOUND_ACTIONS and not flags.is_author:
        return False

    return True


def explain_denial(
    table: PermissionTable,
    role: Any,
    action: CommunityAction,
    flags: ResourceFlags = NO_FLAGS,
) -> str:
    """Human-readable reason matching the first failing check in ``evaluate``."""
    role_key = _role_key(role)
    if role_key is None:
        return "not an active member"
    if action not in table.get(role_key, frozenset()):
        return f"role '{role_key}' does not allow this action"
    if action in LOCK_GUARDED_ACTIONS and flags.is_locked:
        return "resource is locked"
    if action in AUTHOR_BOUND_ACTIONS and not flags.is_author:
        return "only the author may do this"
    return "denied"


class AuthorizationPolicy:
    """
    Resolves permission tables (defaults overlaid with config) and checks
    actions against them.

    Usage
    -----
    >>> policy = AuthorizationPolicy(ConfigManager, logger)
    >>> policy.require(GroupKind.GUILD, member.role, CommunityAction.PIN_POST)
    """

    def __init__(self, config_manager: ConfigManager, logger: Logger) -> None:
        self._config = config_manager
        self.log = logger

    def table_for(self, kind: GroupKind) -> PermissionTable:
        table: Dict[str, FrozenSet[CommunityAction]] = dict(DEFAULT_PERMISSIONS[kind])
        overrides = self._config.get(f"community.permissions.{kind.value}", None) or {}

        if not isinstance(overrides, dict):
            raise ConfigurationError(f"community.permissions.{kind.value}", "must be a mapping of role -> actions")

        for role_key, actions in overrides.items():
            if role_key not in table:
                raise ConfigurationError(
                    f"community.permissions.{kind.value}.{role_key}", f"unknown {kind.value} role"
                )
            try:
                table[role_key] = frozenset(CommunityAction(action) for action in actions)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(
                    f"community.permissions.{kind.value}.{role_key}", f"invalid action list: {exc}"
                ) from exc

        return table

    def allows(
        self,
        kind: GroupKind,
        role: Any,
        action: CommunityAction,
        flags: ResourceFlags = NO_FLAGS,
    ) -> bool:
        return evaluate(self.table_for(kind), role, action, flags)

    def require(
        self,
        kind: GroupKind,
        role: Any,
        action: CommunityAction,
        flags: ResourceFlags = NO_FLAGS,
    ) -> None:
        """
        Raise ``ForbiddenError`` unless the action is permitted.

        Raises:
            ForbiddenError: Role missing or lacking the action, resource
                locked, or actor not the author
        """
        table = self.table_for(kind)
        if evaluate(table, role, action, flags):
            return

        reason = explain_denial(table, role, action, flags)
        self.log.info(
            "Authorization denied",
            extra={
                "group_kind": kind.value,
                "role": _role_key(role),
                "action": action.value,
                "reason": reason,
            },
        )
        raise ForbiddenError(action.value, reason, details={"group_kind": kind.value, "role": _role_key(role)})
