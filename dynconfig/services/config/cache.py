"""
Configuration Cache

In-memory snapshot of the flattened configuration with typed getters.

A refresh builds a complete new mapping off to the side and publishes it
with a single reference assignment. Readers always see one whole payload
and never wait on a refresh in progress.
"""

import re
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping

from dynconfig.common.logging_setup import get_service_logger

from .flatten import INT64_MAX, INT64_MIN, ConfigValue, ValueType

logger = get_service_logger("config.cache")

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

_BOOL_TEXT = {"true": True, "false": False}

# Plain decimal digits only: no surrounding whitespace, no "_" separators
_INTEGER_TEXT = re.compile(r"[+-]?[0-9]+")


class ConfigCache:
    """
    Flattened configuration cache.

    Single writer (the session manager), many readers. Getters never
    raise: missing keys and failed coercions return the caller's default.
    """

    def __init__(self) -> None:
        self._snapshot: Mapping[str, ConfigValue] = MappingProxyType({})
        self._updated_at: datetime | None = None

    def replace(self, entries: Mapping[str, ConfigValue]) -> None:
        """Publish a new snapshot, replacing the previous one wholesale"""
        snapshot = MappingProxyType(dict(entries))
        self._snapshot = snapshot
        self._updated_at = datetime.now(timezone.utc)

    def snapshot(self) -> Mapping[str, ConfigValue]:
        """Current read-only snapshot"""
        return self._snapshot

    @property
    def last_updated_at(self) -> datetime | None:
        return self._updated_at

    def __len__(self) -> int:
        return len(self._snapshot)

    def has_key(self, key: str) -> bool:
        return key in self._snapshot

    def all_keys(self) -> frozenset[str]:
        return frozenset(self._snapshot)

    def get_string(self, key: str, default: str | None = None) -> str | None:
        entry = self._snapshot.get(key)
        if entry is None:
            return default
        return entry.as_text()

    def get_bool(self, key: str, default: bool = False) -> bool:
        entry = self._snapshot.get(key)
        if entry is None:
            return default
        if entry.type == ValueType.BOOL:
            return entry.value
        if entry.type == ValueType.STRING:
            parsed = _BOOL_TEXT.get(entry.value.lower())
            if parsed is not None:
                return parsed
            logger.warning(f"Failed to parse boolean value for key {key}: {entry.value}")
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """32-bit integer getter; wider values return the default"""
        value = self._get_integer(key, "integer")
        if value is None or not INT32_MIN <= value <= INT32_MAX:
            return default
        return value

    def get_long(self, key: str, default: int = 0) -> int:
        """64-bit integer getter"""
        value = self._get_integer(key, "long")
        if value is None or not INT64_MIN <= value <= INT64_MAX:
            return default
        return value

    def get_double(self, key: str, default: float = 0.0) -> float:
        entry = self._snapshot.get(key)
        if entry is None:
            return default
        if entry.type in (ValueType.FLOAT, ValueType.INT):
            return float(entry.value)
        if entry.type == ValueType.STRING:
            try:
                if "_" in entry.value:
                    raise ValueError(entry.value)
                return float(entry.value)
            except ValueError:
                logger.warning(f"Failed to parse double value for key {key}: {entry.value}")
        return default

    def _get_integer(self, key: str, kind: str) -> int | None:
        entry = self._snapshot.get(key)
        if entry is None:
            return None
        if entry.type == ValueType.INT:
            return entry.value
        if entry.type == ValueType.STRING:
            try:
                if not _INTEGER_TEXT.fullmatch(entry.value):
                    raise ValueError(entry.value)
                return int(entry.value)
            except ValueError:
                logger.warning(f"Failed to parse {kind} value for key {key}: {entry.value}")
        return None
