"""Tests for the configuration session state machine and refresh cycle."""

import asyncio
import sys

import pytest

from dynconfig.common.exceptions import (
    InvalidSessionError,
    ResourceNotFoundError,
    StoreError,
    ThrottledError,
)
from dynconfig.services.config.cache import ConfigCache
from dynconfig.services.config.session import Session, SessionManager, SessionState
from dynconfig.services.config.store import PollResult

from .conftest import SCENARIO_DOCUMENT, FakeStore, empty_result, payload_result


def make_manager(store, settings) -> SessionManager:
    return SessionManager(store, settings, ConfigCache())


async def loaded_manager(store, settings) -> SessionManager:
    """Manager with an active session holding the scenario document as v1."""
    store.start_responses.append("token-0")
    store.poll_responses.append(payload_result(SCENARIO_DOCUMENT, "token-1", "v1"))
    manager = make_manager(store, settings)
    assert await manager.initialize_session() is True
    return manager


class TestSession:
    def test_advance_keeps_version_without_label(self):
        session = Session("a", "v1").advance("b")

        assert session == Session("b", "v1")

    def test_advance_replaces_both_fields(self):
        assert Session("a", "v1").advance("b", "v2") == Session("b", "v2")

    def test_default_version_is_unknown(self):
        assert Session("a").version_label == "unknown"


class TestInitializeSession:
    @pytest.mark.asyncio
    async def test_starts_session_and_loads_configuration(self, store, settings):
        manager = await loaded_manager(store, settings)

        assert store.start_calls == [("demo-app", "test", "demo-profile")]
        assert store.poll_tokens == ["token-0"]
        assert manager.state == SessionState.ACTIVE
        assert manager.session == Session("token-1", "v1")
        assert manager.cache.get_int("database.connectionTimeout", 5) == 30
        assert manager.refresh_count == 1
        assert manager.last_refresh_at is not None

    @pytest.mark.asyncio
    async def test_missing_version_label_falls_back_to_unknown(self, store, settings):
        store.poll_responses.append(payload_result({"a": 1}, "token-1", version=None))
        manager = make_manager(store, settings)

        await manager.initialize_session()

        assert manager.current_version == "unknown"
        assert manager.cache.has_key("a")

    @pytest.mark.asyncio
    async def test_start_failure_leaves_client_uninitialized(self, store, settings):
        store.start_responses.append(StoreError("no credentials", operation="start_session"))
        manager = make_manager(store, settings)

        assert await manager.initialize_session() is False

        assert manager.state == SessionState.UNINITIALIZED
        assert manager.session is None
        assert store.poll_tokens == []
        assert manager.failure_count == 1

    @pytest.mark.asyncio
    async def test_refresh_without_session_retries_start(self, store, settings):
        store.start_responses.append(StoreError("offline"))
        manager = make_manager(store, settings)
        await manager.initialize_session()

        await manager.refresh()

        assert len(store.start_calls) == 2
        assert manager.state == SessionState.ACTIVE

    @pytest.mark.asyncio
    async def test_uninitialized_reads_fall_back_to_defaults(self, store, settings):
        store.start_responses.append(StoreError("offline"))
        manager = make_manager(store, settings)
        await manager.initialize_session()

        assert manager.cache.get_int("database.connectionTimeout", 5) == 5
        assert manager.current_version == "unknown"


class TestRefresh:
    @pytest.mark.asyncio
    async def test_new_payload_replaces_cache(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(payload_result({"api": {"timeout": 9}}, "token-2", "v2"))

        await manager.refresh()

        assert manager.cache.all_keys() == {"api.timeout"}
        assert manager.session == Session("token-2", "v2")
        assert store.poll_tokens[-1] == "token-1"

    @pytest.mark.asyncio
    async def test_empty_payload_only_advances_token(self, store, settings):
        manager = await loaded_manager(store, settings)
        keys_before = manager.cache.all_keys()
        store.poll_responses.append(empty_result("token-2"))
        store.poll_responses.append(empty_result("token-3"))

        await manager.refresh()

        assert manager.cache.all_keys() == keys_before
        assert manager.cache.get_int("database.maxConnections", 0) == 20
        assert manager.current_version == "v1"

        await manager.refresh()

        assert store.poll_tokens[-1] == "token-2"

    @pytest.mark.asyncio
    async def test_whitespace_payload_is_ignored(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(PollResult(b"  \n", "token-2", "v2"))

        await manager.refresh()

        assert manager.cache.has_key("database.connectionTimeout")
        assert manager.session == Session("token-2", "v1")

    @pytest.mark.asyncio
    async def test_yaml_payload(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(
            PollResult(b"features:\n  maintenanceMode: true\n", "token-2", "v2", "application/x-yaml")
        )

        await manager.refresh()

        assert manager.cache.get_bool("features.maintenanceMode", False) is True

    @pytest.mark.asyncio
    async def test_malformed_payload_keeps_cache_and_version(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(PollResult(b'{"broken": ', "token-2", "v2", "application/json"))

        await manager.refresh()

        assert manager.cache.get_int("database.connectionTimeout", 5) == 30
        assert manager.session == Session("token-2", "v1")
        assert manager.failure_count == 1

    @pytest.mark.asyncio
    async def test_non_utf8_payload_keeps_cache(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(PollResult(b"\xff\xfe\x00", "token-2", "v2"))

        await manager.refresh()

        assert manager.cache.has_key("features.enableNewFeature")
        assert manager.session == Session("token-2", "v1")

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="no integer digit limit"
    )
    @pytest.mark.asyncio
    async def test_oversized_integer_payload_keeps_cache(self, store, settings):
        manager = await loaded_manager(store, settings)
        payload = ('{"a": ' + "1" * 5000 + "}").encode("utf-8")
        store.poll_responses.append(PollResult(payload, "token-2", "v2", "application/json"))

        await manager.refresh()
        await manager.refresh()

        assert manager.cache.get_int("database.connectionTimeout", 5) == 30
        assert not manager.cache.has_key("a")
        assert manager.session == Session("token-2+", "v1")
        assert store.poll_tokens[-2:] == ["token-1", "token-2"]
        assert manager.failure_count == 1

    @pytest.mark.asyncio
    async def test_deeply_nested_payload_keeps_cache(self, store, settings):
        manager = await loaded_manager(store, settings)
        payload = ("[" * 100_000 + "]" * 100_000).encode("utf-8")
        store.poll_responses.append(PollResult(payload, "token-2", "v2", "application/json"))

        await manager.refresh()

        assert len(manager.cache) == 3
        assert manager.session == Session("token-2", "v1")
        assert manager.failure_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_initial_payload_still_activates_session(self, store, settings):
        store.poll_responses.append(
            PollResult(b"a: !!int abc\n", "token-1", "v1", "application/x-yaml")
        )
        manager = make_manager(store, settings)

        assert await manager.initialize_session() is True

        assert manager.state == SessionState.ACTIVE
        assert manager.session == Session("token-1", "unknown")
        assert len(manager.cache) == 0
        assert manager.failure_count == 1


class TestErrorClassification:
    @pytest.mark.asyncio
    async def test_invalid_token_starts_exactly_one_fresh_session(self, store, settings):
        manager = await loaded_manager(store, settings)
        snapshot_before = dict(manager.cache.snapshot())
        store.poll_responses.append(InvalidSessionError("token expired", operation="poll"))
        store.start_responses.append("fresh-0")

        await manager.refresh()

        assert len(store.start_calls) == 2
        assert store.poll_tokens == ["token-0", "token-1", "fresh-0"]
        assert dict(manager.cache.snapshot()) == snapshot_before
        assert manager.state == SessionState.ACTIVE
        assert manager.session == Session("fresh-0+", "v1")

    @pytest.mark.asyncio
    async def test_rejected_fresh_session_does_not_loop(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(InvalidSessionError("bad token"))
        store.poll_responses.append(InvalidSessionError("bad token again"))

        await manager.refresh()

        assert len(store.start_calls) == 2
        assert manager.state == SessionState.UNINITIALIZED
        assert manager.cache.get_int("database.connectionTimeout", 5) == 30

    @pytest.mark.asyncio
    async def test_failed_reinitialization_keeps_cache(self, store, settings):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(InvalidSessionError("bad token"))
        store.start_responses.append(StoreError("offline"))

        await manager.refresh()

        assert manager.state == SessionState.UNINITIALIZED
        assert len(manager.cache) == 3

    @pytest.mark.parametrize(
        "error",
        [
            ResourceNotFoundError("profile missing"),
            ThrottledError("slow down"),
            StoreError("internal error"),
            RuntimeError("unexpected"),
        ],
    )
    @pytest.mark.asyncio
    async def test_other_failures_keep_state_and_token(self, store, settings, error):
        manager = await loaded_manager(store, settings)
        store.poll_responses.append(error)

        await manager.refresh()
        await manager.refresh()

        assert len(store.start_calls) == 1
        assert store.poll_tokens[-2:] == ["token-1", "token-1"]
        assert manager.state == SessionState.ACTIVE
        assert manager.current_version == "v1"
        assert manager.cache.get_int("database.connectionTimeout", 5) == 30
        assert manager.failure_count == 1


class TestConcurrentRefresh:
    @pytest.mark.asyncio
    async def test_refreshes_never_overlap_or_mix_payloads(self, settings):
        store = FakeStore(poll_delay_s=0.02)
        manager = make_manager(store, settings)
        await manager.initialize_session()

        for i in range(6):
            prefix = "a" if i % 2 == 0 else "b"
            document = {prefix: {f"k{n}": i for n in range(50)}}
            store.poll_responses.append(payload_result(document, f"token-{i + 2}", f"v{i}"))

        observed = []
        done = asyncio.Event()

        async def reader():
            while not done.is_set():
                snapshot = manager.cache.snapshot()
                observed.append(({key.split(".")[0] for key in snapshot}, set(snapshot.values())))
                await asyncio.sleep(0)

        reader_task = asyncio.create_task(reader())
        await asyncio.gather(*(manager.refresh() for _ in range(6)))
        done.set()
        await reader_task

        assert store.max_concurrent_polls == 1
        assert manager.refresh_count == 7
        for prefixes, values in observed:
            assert len(prefixes) <= 1
            assert len({value.value for value in values}) <= 1
