"""
Foreign snapshot decoding.

A snapshot shared by another user comes in one of two shapes:

EXPORT - the structured export file, fields nested under ``data``:
    {"data": {"cardCounts": {"count_001": "3"}, "deckData": {...}, "binderCollection": [...]}}

LEGACY - a flat copy of the synced keys, JSON values still encoded as strings:
    {"count_001": "3", "deckData": "{...}", "binderCollection": "[...]"}

Each field is decoded once, preferring the structured location and
falling back to the flat one.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..exceptions import SnapshotParseError

logger = logging.getLogger(__name__)

COUNT_PREFIX = "count_"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class SnapshotShape(Enum):
    """Layout a foreign snapshot was decoded from."""

    EXPORT = "export"
    LEGACY = "legacy"


def parse_count(value: Any) -> int:
    """Parse a stored count leniently: leading integer, otherwise 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


def decode_json_field(name: str, value: Any) -> Any:
    """Decode a field that may still be a JSON string. Malformed JSON yields None."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring malformed {name}: {SnapshotParseError(name, e)}")
        return None


def _present(value: Any) -> bool:
    """Presence test for snapshot fields. Empty objects and lists count as present."""
    if isinstance(value, (dict, list)):
        return True
    return bool(value)


@dataclass(frozen=True)
class ViewingSnapshot:
    """Decoded foreign snapshot."""

    shape: SnapshotShape
    card_counts: dict[str, Any] = field(default_factory=dict)
    deck_data: Any = None
    binder_collection: Any = None

    @classmethod
    def decode(cls, raw: Any) -> ViewingSnapshot:
        """Decode a raw snapshot object.

        Raises:
            SnapshotParseError: If ``raw`` is not a JSON object
        """
        if not isinstance(raw, dict):
            raise SnapshotParseError("viewing snapshot")

        nested = raw.get("data") if isinstance(raw.get("data"), dict) else None
        shape = SnapshotShape.EXPORT if nested is not None else SnapshotShape.LEGACY

        if nested is not None and _present(nested.get("cardCounts")):
            counts_source = nested["cardCounts"]
            card_counts = dict(counts_source) if isinstance(counts_source, dict) else {}
        else:
            card_counts = {k: v for k, v in raw.items() if k.startswith(COUNT_PREFIX)}

        return cls(
            shape=shape,
            card_counts=card_counts,
            deck_data=cls._field(raw, nested, "deckData"),
            binder_collection=cls._field(raw, nested, "binderCollection"),
        )

    @staticmethod
    def _field(raw: dict[str, Any], nested: dict[str, Any] | None, name: str) -> Any:
        if nested is not None and _present(nested.get(name)):
            return nested[name]
        if _present(raw.get(name)):
            return decode_json_field(name, raw[name])
        return None

    def card_count(self, card_id: str) -> int:
        return parse_count(self.card_counts.get(f"{COUNT_PREFIX}{card_id}"))

    def all_card_counts(self) -> dict[str, int]:
        return {
            key[len(COUNT_PREFIX):]: parse_count(value)
            for key, value in self.card_counts.items()
            if key.startswith(COUNT_PREFIX)
        }
