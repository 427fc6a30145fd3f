"""
Configuration Flattening

Turns a nested configuration document into a flat mapping keyed by
dotted/indexed paths:

    {"database": {"hosts": ["a", "b"], "timeout": 30}}
      -> {"database.hosts[0]": "a", "database.hosts[1]": "b",
          "database.timeout": 30}

Leaf values are stored as typed ConfigValue entries.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import yaml

from dynconfig.common.exceptions import PayloadError

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class ValueType(str, Enum):
    """Scalar types a configuration leaf can hold"""
    STRING = "string"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"


@dataclass(frozen=True)
class ConfigValue:
    """A typed configuration leaf"""
    type: ValueType
    value: str | bool | int | float

    def as_text(self) -> str:
        """Render the value as the document would spell it"""
        if self.type == ValueType.BOOL:
            return "true" if self.value else "false"
        if self.type == ValueType.FLOAT:
            return repr(self.value)
        return str(self.value)


def classify(node: Any) -> ConfigValue:
    """
    Pick the narrowest scalar type for a leaf node.

    bool is checked before int since bool is an int subclass. Integers
    outside the signed 64-bit range and anything unclassifiable (null,
    YAML dates) fall back to their text.
    """
    if isinstance(node, str):
        return ConfigValue(ValueType.STRING, node)
    if isinstance(node, bool):
        return ConfigValue(ValueType.BOOL, node)
    if isinstance(node, int):
        if INT64_MIN <= node <= INT64_MAX:
            return ConfigValue(ValueType.INT, node)
        return ConfigValue(ValueType.STRING, str(node))
    if isinstance(node, float):
        return ConfigValue(ValueType.FLOAT, node)
    if node is None:
        return ConfigValue(ValueType.STRING, "null")
    return ConfigValue(ValueType.STRING, str(node))


def flatten(document: Any, prefix: str = "") -> dict[str, ConfigValue]:
    """
    Flatten a parsed document into path -> ConfigValue.

    Args:
        document: Parsed JSON/YAML tree (dicts, lists, scalars)
        prefix: Path of the document within a larger tree

    Returns:
        New flat mapping. On a path collision the last visited value wins.

    Raises:
        PayloadError: If the document is nested beyond the recursion limit
    """
    entries: dict[str, ConfigValue] = {}
    try:
        _flatten_into(entries, prefix, document)
    except RecursionError as e:
        raise PayloadError("document is nested too deeply") from e
    return entries


def _flatten_into(entries: dict[str, ConfigValue], prefix: str, node: Any) -> None:
    if isinstance(node, dict):
        for field_name, child in node.items():
            field_name = str(field_name)
            key = f"{prefix}.{field_name}" if prefix else field_name
            _flatten_into(entries, key, child)
    elif isinstance(node, list):
        for index, child in enumerate(node):
            _flatten_into(entries, f"{prefix}[{index}]", child)
    else:
        entries[prefix] = classify(node)


def parse_document(text: str, content_type: str | None = None) -> Any:
    """
    Parse payload text into a document tree.

    YAML is used when the content type mentions it, JSON otherwise.

    Raises:
        PayloadError: If the text is not a valid document
    """
    try:
        if content_type and "yaml" in content_type.lower():
            return yaml.safe_load(text)
        return json.loads(text)
    except (ValueError, RecursionError, yaml.YAMLError) as e:
        # ValueError also covers the integer digit limit and YAML constructor errors
        raise PayloadError(str(e), payload=text) from e
