"""
NotificationService - Per-user notification ledger
==================================================

Handles:
- Appending notifications inside the caller's transaction (``notify``)
- Read state: mark one / mark all, both idempotent
- All-or-nothing batch deletion restricted to the recipient
- Unread counts and the latest-N feed

Notifications are append-only from the engines' point of view; only the
recipient may change or delete them. Delivery is pull-only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from src.core.database.service import DatabaseService
from src.core.validation.input_validator import InputValidator
from src.database.models.core.notification import Notification
from src.database.models.enums import NotificationType
from src.modules.notification.identity import fallback_name
from src.modules.shared.base_repository import BaseRepository
from src.modules.shared.base_service import BaseService
from src.modules.shared.exceptions import ForbiddenError, NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.notification.identity import IdentityLookup

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_BATCH_SIZE = 500
MAX_TITLE_LENGTH = 200


def clamp_page_size(size: Optional[int]) -> int:
    """Sizes <= 0 (or missing) mean the default; anything above the max is capped."""
    if size is None or size <= 0:
        return DEFAULT_PAGE_SIZE
    return min(size, MAX_PAGE_SIZE)


def notification_to_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "notification_id": notification.id,
        "recipient_id": notification.recipient_id,
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "payload": dict(notification.payload or {}),
        "is_read": notification.is_read,
        "read_at": notification.read_at,
        "created_at": notification.created_at,
    }


class NotificationService(BaseService):
    """
    NotificationService owns the notification ledger.

    Business Logic:
    - Engines append rows through ``notify`` in their own transaction
    - ``read_at`` is set iff ``is_read`` is true
    - Only the recipient may mark or delete a notification
    - Batch deletion validates every id before deleting any
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        identity_lookup: Optional[IdentityLookup] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._identity = identity_lookup
        self._notification_repo = BaseRepository[Notification](Notification, self.log)

    # -------------------------------------------------------------------------
    # Creation (called by other engines)
    # -------------------------------------------------------------------------

    async def display_name(self, user_id: int) -> str:
        if self._identity is None:
            return fallback_name(user_id)
        name = await self._identity.display_name(user_id)
        return name or fallback_name(user_id)

    async def notify(
        self,
        session: AsyncSession,
        recipient_id: int,
        notification_type: NotificationType,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """
        Append a notification in the caller's transaction.

        The row is flushed so its id is available; it commits or rolls back
        with the triggering mutation.

        Raises:
            ValidationError: Empty title, or longer than ``MAX_TITLE_LENGTH``
        """
        title = InputValidator.validate_string(title, "title", min_length=1, max_length=MAX_TITLE_LENGTH)
        notification = Notification(
            recipient_id=recipient_id,
            type=notification_type,
            title=title,
            message=message,
            payload=dict(payload or {}),
            is_read=False,
            read_at=None,
        )
        self._notification_repo.add(session, notification)
        await self._notification_repo.flush(session)
        return notification

    async def announce(self, notifications: Iterable[Notification]) -> None:
        """Publish ``notification.created`` for rows whose transaction has committed."""
        for notification in notifications:
            await self.emit_event(
                "notification.created",
                {
                    "notification_id": notification.id,
                    "recipient_id": notification.recipient_id,
                    "type": notification.type.value,
                },
            )

    # -------------------------------------------------------------------------
    # Read state
    # -------------------------------------------------------------------------

    async def mark_read(self, notification_id: int, actor_id: int) -> Dict[str, Any]:
        """
        Mark one notification read. Already-read notifications are returned
        unchanged.

        Raises:
            NotFoundError: Notification does not exist
            ForbiddenError: Actor is not the recipient
        """
        notification_id = InputValidator.validate_entity_id(notification_id, "notification_id")
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            notification = await self._notification_repo.get_for_update(session, notification_id)
            if notification is None:
                raise NotFoundError("Notification", notification_id)

            if notification.recipient_id != actor_id:
                raise ForbiddenError("mark_read", "only the recipient may change a notification")

            if not notification.is_read:
                swapped = await self._notification_repo.compare_and_set(
                    session,
                    notification,
                    expected={"is_read": False},
                    values={"is_read": True, "read_at": self.now()},
                )
                if not swapped:
                    # Read concurrently; the end state is the same
                    await self._notification_repo.refresh(session, notification)

            return notification_to_dict(notification)

    async def mark_all_read(self, actor_id: int) -> int:
        """Mark every unread notification of ``actor_id`` read in one statement. Returns the count."""
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_transaction() as session:
            updated = await self._notification_repo.update_where(
                session,
                {"is_read": True, "read_at": self.now()},
                Notification.recipient_id == actor_id,
                Notification.is_read.is_(False),
            )

        if updated:
            self.log_operation("mark_all_read", user_id=actor_id, updated=updated)
        return updated

    async def delete_batch(self, notification_ids: Sequence[Any], actor_id: int) -> int:
        """
        Delete notifications owned by ``actor_id``, all or nothing.

        Ids are de-duplicated and checked in input order; the first missing
        or foreign id fails the whole batch before anything is deleted.

        Raises:
            NotFoundError: An id does not exist
            ForbiddenError: An id belongs to another user
        """
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        ids = InputValidator.validate_id_list(
            list(notification_ids) if notification_ids is not None else None,
            "notification_ids",
            max_count=MAX_BATCH_SIZE,
            deduplicate=True,
        )
        if not ids:
            return 0

        async with DatabaseService.get_transaction() as session:
            found = {n.id: n for n in await self._notification_repo.get_many(session, ids)}

            for notification_id in ids:
                notification = found.get(notification_id)
                if notification is None:
                    raise NotFoundError("Notification", notification_id)
                if notification.recipient_id != actor_id:
                    raise ForbiddenError(
                        "delete_notifications",
                        "only the recipient may delete a notification",
                        details={"notification_id": notification_id},
                    )

            deleted = await self._notification_repo.delete_where(
                session,
                Notification.id.in_(ids),
                Notification.recipient_id == actor_id,
            )

        self.log_operation("delete_notifications", user_id=actor_id, deleted=deleted)
        return deleted

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def count_unread(self, actor_id: int) -> int:
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")

        async with DatabaseService.get_session() as session:
            return await self._notification_repo.count(
                session,
                Notification.recipient_id == actor_id,
                Notification.is_read.is_(False),
            )

    async def get_latest(self, actor_id: int, size: Optional[int] = DEFAULT_PAGE_SIZE) -> List[Dict[str, Any]]:
        """Newest notifications first. ``size`` is clamped to [1, 100]; <= 0 means 20."""
        actor_id = InputValidator.validate_user_id(actor_id, "actor_id")
        limit = clamp_page_size(
            None if size is None else InputValidator.validate_integer(size, "size")
        )

        async with DatabaseService.get_session() as session:
            rows = await self._notification_repo.find_many_where(
                session,
                Notification.recipient_id == actor_id,
                order_by=[Notification.created_at.desc(), Notification.id.desc()],
                limit=limit,
            )

        return [notification_to_dict(row) for row in rows]
