"""
Unit tests for notification paging, display names, title validation and
adapter templates.
"""

import pytest

from src.database.models.enums import NotificationType
from src.modules.community.adapters import GUILD_ADAPTER, PARTY_ADAPTER
from src.modules.notification.identity import StaticIdentityLookup, fallback_name
from src.modules.notification.service import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_TITLE_LENGTH,
    NotificationService,
    clamp_page_size,
)
from src.modules.shared.exceptions import ValidationError


@pytest.mark.unit
class TestClampPageSize:

    @pytest.mark.parametrize(
        "size, expected",
        [(None, 20), (0, 20), (-5, 20), (1, 1), (20, 20), (100, 100), (500, 100)],
    )
    def test_clamp(self, size, expected):
        assert clamp_page_size(size) == expected

    def test_constants(self):
        assert DEFAULT_PAGE_SIZE == 20
        assert MAX_PAGE_SIZE == 100


@pytest.mark.unit
class TestDisplayName:

    @pytest.fixture
    def service(self, mock_config_manager, mock_event_bus, mocker):
        lookup = StaticIdentityLookup({7: "Marie"})
        return NotificationService(mock_config_manager, mock_event_bus, mocker.MagicMock(), identity_lookup=lookup)

    async def test_known_user(self, service):
        assert await service.display_name(7) == "Marie"

    async def test_unknown_user_falls_back(self, service):
        assert await service.display_name(8) == fallback_name(8) == "User #8"

    async def test_registered_name(self, mock_config_manager, mock_event_bus, mocker):
        lookup = StaticIdentityLookup()
        service = NotificationService(mock_config_manager, mock_event_bus, mocker.MagicMock(), identity_lookup=lookup)

        lookup.register(8, "Emmy")

        assert await service.display_name(8) == "Emmy"

    async def test_without_lookup(self, mock_config_manager, mock_event_bus, mocker):
        service = NotificationService(mock_config_manager, mock_event_bus, mocker.MagicMock())

        assert await service.display_name(3) == "User #3"

    async def test_announce_publishes_per_row(self, service, mock_event_bus, mocker):
        row = mocker.MagicMock(id=11, recipient_id=7)
        row.type.value = "guild"

        await service.announce([row])

        mock_event_bus.publish.assert_awaited_once_with(
            "notification.created",
            {"notification_id": 11, "recipient_id": 7, "type": "guild"},
        )


@pytest.mark.unit
class TestTemplates:

    def test_guild_invitation_text(self):
        title, body = GUILD_ADAPTER.render("invitation_received", inviter_name="Ada", group_name="Study Hall")

        assert title == "Guild invitation"
        assert body == "Ada invited you to join the guild Study Hall."

    def test_party_leadership_text(self):
        title, _ = PARTY_ADAPTER.render("leadership_transferred", actor_name="Ada", group_name="Night Owls")

        assert title == "You now lead Night Owls"

    def test_role_parsing(self):
        assert GUILD_ADAPTER.parse_role(" Admin ").value == "admin"

        with pytest.raises(ValueError):
            PARTY_ADAPTER.parse_role("admin")


@pytest.mark.unit
class TestNotifyTitle:

    @pytest.fixture
    def service(self, mock_config_manager, mock_event_bus, mocker):
        return NotificationService(mock_config_manager, mock_event_bus, mocker.MagicMock())

    @pytest.fixture
    def session(self, mocker):
        session = mocker.MagicMock()
        session.flush = mocker.AsyncMock()
        return session

    async def test_title_at_the_cap_is_stored(self, service, session):
        title = "x" * MAX_TITLE_LENGTH

        notification = await service.notify(session, 7, NotificationType.GUILD, title, "Body")

        assert notification.title == title
        session.add.assert_called_once_with(notification)

    @pytest.mark.parametrize("title", ["x" * (MAX_TITLE_LENGTH + 1), "   "])
    async def test_bad_title_is_rejected(self, service, session, title):
        with pytest.raises(ValidationError) as exc_info:
            await service.notify(session, 7, NotificationType.GUILD, title, "Body")

        assert exc_info.value.field == "title"
        session.add.assert_not_called()

    def test_rendered_titles_fit_the_cap(self):
        long_name = "n" * 100
        for adapter in (GUILD_ADAPTER, PARTY_ADAPTER):
            for key in adapter.templates:
                title, _ = adapter.render(
                    key, actor_name=long_name, inviter_name=long_name, group_name=long_name, role="member"
                )
                assert len(title) <= MAX_TITLE_LENGTH, key
