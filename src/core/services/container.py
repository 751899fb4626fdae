"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for all community services.
Provides singleton instances of services with proper dependency management.

Responsibilities
----------------
- Build the shared AuthorizationPolicy and NotificationService
- Instantiate the generic engines once per group kind (guild, party)
- Initialize the guild and party services with their adapters
- Provide easy access to services throughout the application

Non-Responsibilities
--------------------
- Database and config initialization (done by the caller before initialize())
- Transport concerns (HTTP routing, authentication)

Architecture Notes
------------------
- Receives dependencies (ConfigManager, EventBus) via constructor injection
- All domain services share the constructor prefix
  (config_manager, event_bus, logger); extra collaborators are keywords
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from src.core.logging.logger import get_logger
from src.modules.community import (
    GUILD_ADAPTER,
    PARTY_ADAPTER,
    AuthorizationPolicy,
    InvitationService,
    MembershipService,
)
from src.modules.guild import GuildJoinRequestService, GuildPostService, GuildService
from src.modules.notification import NotificationService
from src.modules.party import PartyService, PartyStashService

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.manager import ConfigManager
    from src.core.event.bus import EventBus
    from src.modules.notification.identity import IdentityLookup

logger = get_logger(__name__)


class ServiceContainer:
    """
    Dependency injection container for all domain services.

    Usage:
        container = ServiceContainer(ConfigManager, event_bus, logger)
        await container.initialize()

        await container.guild_invitations.invite(guild_id, inviter_id, invitee_id=42)
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        identity_lookup: Optional[IdentityLookup] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._identity_lookup = identity_lookup

        self._policy: Optional[AuthorizationPolicy] = None
        self._notifications: Optional[NotificationService] = None

        # Guild services
        self._guilds: Optional[GuildService] = None
        self._guild_invitations: Optional[InvitationService] = None
        self._guild_members: Optional[MembershipService] = None
        self._guild_join_requests: Optional[GuildJoinRequestService] = None
        self._guild_posts: Optional[GuildPostService] = None

        # Party services
        self._parties: Optional[PartyService] = None
        self._party_invitations: Optional[InvitationService] = None
        self._party_members: Optional[MembershipService] = None
        self._party_stash: Optional[PartyStashService] = None

        self._initialized = False

        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize all services.

        Call this during application startup after ConfigManager,
        DatabaseService and EventBus are ready.
        """
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            start = time.perf_counter()
            self._policy = AuthorizationPolicy(
                self._config_manager,
                get_logger("src.modules.community.policy.AuthorizationPolicy"),
            )
            self._service_init_times["policy"] = time.perf_counter() - start

            self._notifications = self._create_service(
                "notifications",
                NotificationService,
                identity_lookup=self._identity_lookup,
            )

            engine_deps = {"policy": self._policy, "notifications": self._notifications}

            # Guild services
            self._guilds = self._create_service("guilds", GuildService, adapter=GUILD_ADAPTER, policy=self._policy)
            self._guild_invitations = self._create_service(
                "guild_invitations", InvitationService, adapter=GUILD_ADAPTER, **engine_deps
            )
            self._guild_members = self._create_service(
                "guild_members", MembershipService, adapter=GUILD_ADAPTER, **engine_deps
            )
            self._guild_join_requests = self._create_service(
                "guild_join_requests", GuildJoinRequestService, adapter=GUILD_ADAPTER, **engine_deps
            )
            self._guild_posts = self._create_service(
                "guild_posts", GuildPostService, adapter=GUILD_ADAPTER, **engine_deps
            )

            # Party services
            self._parties = self._create_service("parties", PartyService, adapter=PARTY_ADAPTER)
            self._party_invitations = self._create_service(
                "party_invitations", InvitationService, adapter=PARTY_ADAPTER, **engine_deps
            )
            self._party_members = self._create_service(
                "party_members", MembershipService, adapter=PARTY_ADAPTER, **engine_deps
            )
            self._party_stash = self._create_service(
                "party_stash", PartyStashService, adapter=PARTY_ADAPTER, policy=self._policy
            )

            self._init_end = time.perf_counter()
            self._initialized = True

            extra_data: Dict[str, Any] = {
                "total_time_seconds": round(self._init_end - self._init_start, 3),
                "service_count": len(self._service_init_times),
            }
            if self._service_init_times:
                slowest = max(self._service_init_times, key=self._service_init_times.__getitem__)
                extra_data["slowest_service"] = slowest
                extra_data["slowest_duration"] = round(self._service_init_times[slowest], 3)

            self._logger.info("Service container initialized successfully", extra=extra_data)

        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _create_service(self, name: str, cls: type, **dependencies: Any) -> Any:
        """
        Service constructor with timing.

        Args:
            name: Service name for logging and tracking
            cls: Service class to instantiate
            **dependencies: Collaborators beyond config, events and logger
        """
        start = time.perf_counter()
        try:
            instance = cls(
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}.{name}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3) if self._init_start and self._init_end else None
            ),
        }

    def _require(self, service: Optional[Any]) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    # ========================================================================
    # Shared
    # ========================================================================

    @property
    def policy(self) -> AuthorizationPolicy:
        return self._require(self._policy)

    @property
    def notifications(self) -> NotificationService:
        return self._require(self._notifications)

    # ========================================================================
    # Guild Services
    # ========================================================================

    @property
    def guilds(self) -> GuildService:
        return self._require(self._guilds)

    @property
    def guild_invitations(self) -> InvitationService:
        return self._require(self._guild_invitations)

    @property
    def guild_members(self) -> MembershipService:
        return self._require(self._guild_members)

    @property
    def guild_join_requests(self) -> GuildJoinRequestService:
        return self._require(self._guild_join_requests)

    @property
    def guild_posts(self) -> GuildPostService:
        return self._require(self._guild_posts)

    # ========================================================================
    # Party Services
    # ========================================================================

    @property
    def parties(self) -> PartyService:
        return self._require(self._parties)

    @property
    def party_invitations(self) -> InvitationService:
        return self._require(self._party_invitations)

    @property
    def party_members(self) -> MembershipService:
        return self._require(self._party_members)

    @property
    def party_stash(self) -> PartyStashService:
        return self._require(self._party_stash)
