"""
Config Service - Dynamic Configuration Client

Responsible for:
- Opening a configuration session against the remote store
- Refreshing on a fixed schedule (every 5 minutes by default)
- Manual refresh on demand
- Serving typed reads from the flattened cache
- Graceful shutdown: scheduler first, then the store client
"""

from datetime import datetime, timezone
from typing import Callable

from dynconfig.common.config import ClientSettings
from dynconfig.common.logging_setup import get_service_logger
from dynconfig.common.scheduler import ScheduledLoop

from .cache import ConfigCache
from .session import SessionManager, SessionState
from .store import ConfigStore, create_store

logger = get_service_logger("config")


class ConfigService:
    """
    Dynamic configuration client.

    With no application id configured the service is permanently
    disabled: nothing is started and every getter returns its default.
    """

    def __init__(
        self,
        settings: ClientSettings,
        store_factory: Callable[[ClientSettings], ConfigStore] = create_store,
    ):
        self.settings = settings
        self.store_factory = store_factory
        self.cache = ConfigCache()

        self.store: ConfigStore | None = None
        self.session: SessionManager | None = None
        self._scheduler: ScheduledLoop | None = None
        self._start_time: datetime | None = None

    async def __aenter__(self) -> "ConfigService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Build the store client, open a session and start periodic refresh"""
        if self.store is not None:
            return

        if not self.settings.is_configured:
            logger.warning("Application ID not configured, skipping configuration client startup")
            return

        try:
            self.store = self.store_factory(self.settings)
        except Exception as e:
            logger.error(f"Failed to create configuration store client: {e}", exc_info=True)
            return

        self._start_time = datetime.now(timezone.utc)
        self.session = SessionManager(self.store, self.settings, self.cache)

        await self.session.initialize_session()

        self._scheduler = ScheduledLoop(
            self.settings.refresh_interval_s,
            self._scheduled_refresh,
            name="config-refresh",
        )
        await self._scheduler.start()

        logger.info(
            f"Config Service started for application: {self.settings.application_id}, "
            f"environment: {self.settings.environment}",
            extra={
                "application_id": self.settings.application_id,
                "environment": self.settings.environment,
                "refresh_interval_s": self.settings.refresh_interval_s,
            },
        )

    async def stop(self) -> None:
        """Stop the scheduler and drain in-flight refreshes (bounded grace period), then release the store client"""
        if self._scheduler:
            await self._scheduler.stop(grace_s=self.settings.shutdown_grace_s)

        if self.session is not None:
            await self.session.close(grace_s=self.settings.shutdown_grace_s)

        if self.store is not None:
            try:
                self.store.close()
            except Exception as e:
                logger.warning(f"Error closing configuration store client: {e}")
            self.store = None
            logger.info("Config Service stopped")

    async def _scheduled_refresh(self) -> None:
        # Session establishment is only retried on demand, not on the timer
        if self.session.state != SessionState.ACTIVE:
            logger.debug("No active configuration session, skipping scheduled refresh")
            return
        await self.session.refresh()

    async def manual_refresh(self) -> None:
        """Refresh now, outside the schedule. Re-attempts session setup if needed."""
        if not self.is_enabled():
            logger.debug("Manual refresh ignored, configuration client disabled")
            return

        logger.info("Manual configuration refresh requested")
        await self.session.refresh()

    def is_enabled(self) -> bool:
        """True when an application id is configured and the store client exists"""
        return self.settings.is_configured and self.store is not None

    @property
    def current_version(self) -> str:
        return self.session.current_version if self.session else "unknown"

    def get_stats(self) -> dict:
        """Introspection summary, always available"""
        last_refresh = self.session.last_refresh_at if self.session else None
        return {
            "enabled": self.is_enabled(),
            "count": len(self.cache),
            "current_version": self.current_version,
            "application_id": self.settings.application_id,
            "environment": self.settings.environment,
            "profile": self.settings.configuration_profile,
            "session_active": bool(self.session and self.session.state == SessionState.ACTIVE),
            "started_at": self._start_time.isoformat() if self._start_time else None,
            "last_refreshed_at": last_refresh.isoformat() if last_refresh else None,
            "refresh_count": self.session.refresh_count if self.session else 0,
            "failure_count": self.session.failure_count if self.session else 0,
            "next_poll_interval_s": self.session.next_poll_interval_s if self.session else None,
            "scheduler": self._scheduler.get_stats() if self._scheduler else None,
        }

    # Typed reads

    def get_string(self, key: str, default: str | None = None) -> str | None:
        return self.cache.get_string(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        return self.cache.get_bool(key, default)

    def get_int(self, key: str, default: int = 0) -> int:
        return self.cache.get_int(key, default)

    def get_long(self, key: str, default: int = 0) -> int:
        return self.cache.get_long(key, default)

    def get_double(self, key: str, default: float = 0.0) -> float:
        return self.cache.get_double(key, default)

    def has_key(self, key: str) -> bool:
        return self.cache.has_key(key)

    def all_keys(self) -> frozenset[str]:
        return self.cache.all_keys()
