"""Shared test fixtures for the dynconfig test suite."""

import json
import threading
import time
from collections import deque
from typing import Any, Callable

import pytest

from dynconfig.common.config import ClientSettings
from dynconfig.services.config.store import PollResult

SCENARIO_DOCUMENT = {
    "database": {"connectionTimeout": 30, "maxConnections": 20},
    "features": {"enableNewFeature": True},
}


def payload_result(
    document: Any,
    next_token: str,
    version: str | None = None,
    content_type: str | None = "application/json",
) -> PollResult:
    """Build a poll response carrying a JSON document."""
    return PollResult(
        payload=json.dumps(document).encode("utf-8"),
        next_token=next_token,
        version_label=version,
        content_type=content_type,
    )


def empty_result(next_token: str) -> PollResult:
    """Build a 'no change' poll response."""
    return PollResult(payload=b"", next_token=next_token)


class FakeStore:
    """In-memory ConfigStore with scripted responses.

    start_responses / poll_responses hold tokens, PollResults or exceptions
    and are consumed in order. When a queue runs dry, start_session returns
    a fresh token and poll reports no change.
    """

    def __init__(self, poll_delay_s: float = 0.0) -> None:
        self.start_responses: deque = deque()
        self.poll_responses: deque = deque()
        self.start_calls: list[tuple[str, str, str]] = []
        self.poll_tokens: list[str] = []
        self.poll_delay_s = poll_delay_s
        self.closed = False
        self.on_close: Callable[[], None] | None = None

        self.max_concurrent_polls = 0
        self._in_flight = 0
        self._lock = threading.Lock()
        self._session_counter = 0

    def start_session(self, application_id: str, environment_id: str, profile_id: str) -> str:
        self.start_calls.append((application_id, environment_id, profile_id))
        if self.start_responses:
            item = self.start_responses.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        self._session_counter += 1
        return f"initial-{self._session_counter}"

    def poll(self, token: str) -> PollResult:
        with self._lock:
            self._in_flight += 1
            self.max_concurrent_polls = max(self.max_concurrent_polls, self._in_flight)
        try:
            self.poll_tokens.append(token)
            if self.poll_delay_s:
                time.sleep(self.poll_delay_s)
            item = self.poll_responses.popleft() if self.poll_responses else empty_result(f"{token}+")
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            with self._lock:
                self._in_flight -= 1

    def close(self) -> None:
        if self.on_close:
            self.on_close()
        self.closed = True


@pytest.fixture
def settings() -> ClientSettings:
    """Enabled settings with a short refresh interval."""
    return ClientSettings(
        application_id="demo-app",
        environment="test",
        configuration_profile="demo-profile",
        refresh_interval_s=60.0,
        shutdown_grace_s=1.0,
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()
