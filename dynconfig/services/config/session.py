"""
Configuration Session Manager

Owns the continuation token and version label, and drives the refresh
cycle against the remote store:

    UNINITIALIZED --start_session ok--> ACTIVE --poll ok--> ACTIVE
          ^                               |
          +------- token rejected --------+  (re-established immediately)

Responsibilities:
- Start a session and fetch the initial configuration
- Poll for changes and rebuild the cache on every non-empty payload
- Classify store failures; only a rejected token triggers recovery
- Serialize refreshes so at most one network exchange and cache swap
  is in flight at a time
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from dynconfig.common.config import ClientSettings
from dynconfig.common.exceptions import (
    InvalidSessionError,
    PayloadError,
    ResourceNotFoundError,
    StoreError,
    ThrottledError,
)
from dynconfig.common.logging_setup import get_service_logger

from .cache import ConfigCache
from .flatten import flatten, parse_document
from .store import ConfigStore, PollResult

logger = get_service_logger("config.session")

UNKNOWN_VERSION = "unknown"


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"


@dataclass(frozen=True)
class Session:
    """Continuation token and the version it produced, replaced as one value"""
    token: str
    version_label: str = UNKNOWN_VERSION

    def advance(self, next_token: str, version_label: str | None = None) -> "Session":
        return Session(
            token=next_token,
            version_label=self.version_label if version_label is None else version_label,
        )


class SessionManager:
    """
    Session lifecycle and refresh orchestration.

    Store calls are blocking (boto3), so they run in a worker thread.
    Store and payload errors are logged and absorbed here; callers only
    ever observe a stale cache.
    """

    def __init__(
        self,
        store: ConfigStore,
        settings: ClientSettings,
        cache: ConfigCache,
    ):
        self.store = store
        self.settings = settings
        self.cache = cache

        self._session: Session | None = None
        self._lock = asyncio.Lock()
        self._last_refresh_at: datetime | None = None
        self._closed = False
        self._discard_results = False

        self.refresh_count = 0
        self.next_poll_interval_s: int | None = None
        self.failure_count = 0

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._session else SessionState.UNINITIALIZED

    @property
    def current_version(self) -> str:
        return self._session.version_label if self._session else UNKNOWN_VERSION

    @property
    def last_refresh_at(self) -> datetime | None:
        return self._last_refresh_at

    async def initialize_session(self) -> bool:
        """
        Start a fresh session and fetch the initial configuration.

        Returns:
            True if a session was established
        """
        async with self._lock:
            if self._closed:
                return False
            return await self._initialize_locked()

    async def refresh(self) -> None:
        """
        Poll the store once and apply any change.

        Without a session, this attempts to establish one instead.
        """
        async with self._lock:
            if self._closed:
                return
            if self._session is None:
                await self._initialize_locked()
                return
            await self._refresh_locked(allow_reinit=True)

    async def close(self, grace_s: float) -> None:
        """
        Stop accepting refreshes.

        A refresh already in flight gets up to grace_s seconds to finish.
        If it is still waiting on the store after that, its result is
        discarded when it arrives.
        """
        self._closed = True
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=grace_s)
        except asyncio.TimeoutError:
            logger.warning(f"Configuration refresh still running after {grace_s}s, discarding its result")
            self._discard_results = True
            return
        self._lock.release()

    async def _initialize_locked(self) -> bool:
        try:
            token = await asyncio.to_thread(
                self.store.start_session,
                self.settings.application_id,
                self.settings.environment,
                self.settings.configuration_profile,
            )
        except Exception as e:
            self._session = None
            self.failure_count += 1
            logger.error(f"Failed to initialize configuration session: {e}", exc_info=True)
            return False

        # Keep the version label across re-establishment; the cache still holds it
        self._session = Session(token=token, version_label=self.current_version)
        logger.info(
            "Configuration session initialized",
            extra={
                "application_id": self.settings.application_id,
                "environment": self.settings.environment,
                "profile": self.settings.configuration_profile,
            },
        )

        # The fresh session's first poll must not recurse into another re-init
        await self._refresh_locked(allow_reinit=False)
        return True

    async def _refresh_locked(self, allow_reinit: bool) -> None:
        session = self._session
        if session is None:
            return

        try:
            result = await asyncio.to_thread(self.store.poll, session.token)
        except InvalidSessionError as e:
            self.failure_count += 1
            logger.error(f"Configuration session rejected: {e.message}")
            if allow_reinit:
                await self._initialize_locked()
            else:
                self._session = None
            return
        except ResourceNotFoundError as e:
            self.failure_count += 1
            logger.error(f"Configuration resource not found: {e.message}")
            return
        except ThrottledError as e:
            self.failure_count += 1
            logger.warning(f"Configuration request throttled, will retry later: {e.message}")
            return
        except StoreError as e:
            self.failure_count += 1
            logger.error(f"Failed to refresh configuration: {e.message}")
            return
        except Exception as e:
            self.failure_count += 1
            logger.error(f"Failed to refresh configuration: {e}", exc_info=True)
            return

        self._apply(session, result)

    def _apply(self, session: Session, result: PollResult) -> None:
        """Apply a poll result: advance the token, rebuild the cache on new content"""
        if self._discard_results:
            logger.info("Configuration client closed, dropping late refresh result")
            return
        self._last_refresh_at = datetime.now(timezone.utc)
        self.refresh_count += 1
        if result.next_poll_interval_s is not None:
            self.next_poll_interval_s = result.next_poll_interval_s

        if not result.has_payload:
            self._session = session.advance(result.next_token)
            logger.debug(
                f"No configuration changes detected, version: {session.version_label}",
                extra={"next_poll_interval_s": result.next_poll_interval_s},
            )
            return

        version = result.version_label or UNKNOWN_VERSION

        try:
            text = result.payload.decode("utf-8")
            if not text.strip():
                self._session = session.advance(result.next_token)
                logger.warning("Configuration content is empty")
                return

            entries = flatten(parse_document(text, result.content_type))
        except UnicodeDecodeError as e:
            self._session = session.advance(result.next_token)
            self.failure_count += 1
            logger.error(f"Configuration payload is not valid UTF-8: {e}")
            return
        except PayloadError as e:
            self._session = session.advance(result.next_token)
            self.failure_count += 1
            logger.error(
                f"Failed to parse configuration: {e.message}",
                extra={"payload": e.payload or text, "version": version},
            )
            return

        # Publish the cache first so the version label never runs ahead of it
        self.cache.replace(entries)
        self._session = session.advance(result.next_token, version)

        logger.info(
            f"Configuration refreshed, version: {version}, {len(entries)} keys loaded",
            extra={
                "version": version,
                "key_count": len(entries),
                "next_poll_interval_s": result.next_poll_interval_s,
            },
        )
        if logger.isEnabledFor(logging.DEBUG):
            for key, entry in sorted(entries.items()):
                logger.debug(f"Loaded config key: {key} = {entry.as_text()}")
