"""
Serializable snapshot of draw engine state.

One DrawSnapshot is stored per deterministic ID in the state file. The JSON
shape is a flat object; per-id maps are written with stringified ids as keys
since JSON object keys must be strings.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a UTC timestamp as RFC 3339 with a trailing Z."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Accepts a trailing "Z" and fractional seconds longer than microseconds
    (nanosecond precision is truncated).

    Raises:
        TypeError: If value is not a string
        ValueError: If the string is not a valid timestamp
    """
    if not isinstance(value, str):
        raise TypeError(f"Timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r".\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _int_keys(mapping: Dict[Any, Any], cast) -> Dict[int, Any]:
    if mapping is None:
        return {}
    if not isinstance(mapping, dict):
        raise TypeError(f"Per-id map must be an object, got {type(mapping).__name__}")
    return {int(key): cast(value) for key, value in mapping.items()}


def _bool(value) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"Flag must be true or false, got {value!r}")
    return value


@dataclass
class DrawSnapshot:
    """
    Persisted engine state for one configuration.

    Grid dimensions are 0 for non-grid snapshots, numbers is empty for range
    and grid snapshots.
    """

    id: str
    data_type: str
    last_updated: datetime = field(default_factory=utc_now)
    draw_counts: Dict[int, int] = field(default_factory=dict)
    last_draw_round: Dict[int, int] = field(default_factory=dict)
    current_round: int = 0
    total_draws: int = 0
    current_probabilities: Dict[int, float] = field(default_factory=dict)
    min_pool_size: int = 3
    max_gap_threshold: int = 5
    cold_start_boost: float = 2.0
    decay_factor: float = 0.7
    rows: int = 0
    cols: int = 0
    numbers: List[int] = field(default_factory=list)
    number_range_start: int = 0
    number_range_end: int = 0
    blacklist: List[int] = field(default_factory=list)
    whitelist: List[int] = field(default_factory=list)
    whitelist_only_mode: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "id": self.id,
            "last_updated": format_timestamp(self.last_updated),
            "draw_counts": {str(k): v for k, v in self.draw_counts.items()},
            "last_draw_round": {str(k): v for k, v in self.last_draw_round.items()},
            "current_round": self.current_round,
            "total_draws": self.total_draws,
            "current_probabilities": {str(k): v for k, v in self.current_probabilities.items()},
            "min_pool_size": self.min_pool_size,
            "max_gap_threshold": self.max_gap_threshold,
            "cold_start_boost": self.cold_start_boost,
            "decay_factor": self.decay_factor,
            "data_type": self.data_type,
            "rows": self.rows,
            "cols": self.cols,
            "numbers": list(self.numbers),
            "number_range_start": self.number_range_start,
            "number_range_end": self.number_range_end,
            "blacklist": sorted(self.blacklist),
            "whitelist": sorted(self.whitelist),
            "whitelist_only_mode": self.whitelist_only_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_id: str = "") -> "DrawSnapshot":
        """
        Build a snapshot from a decoded JSON object.

        Missing fields fall back to their defaults so older or partial entries
        still load.

        Raises:
            ValueError: If a field has the wrong shape
            TypeError: If a field has the wrong type
        """
        if not isinstance(data, dict):
            raise TypeError(f"Snapshot entry must be an object, got {type(data).__name__}")

        defaults = cls(id=default_id, data_type="")
        last_updated = data.get("last_updated")
        return cls(
            id=str(data.get("id", default_id)),
            data_type=str(data.get("data_type", "")),
            last_updated=parse_timestamp(last_updated) if last_updated else defaults.last_updated,
            draw_counts=_int_keys(data.get("draw_counts"), int),
            last_draw_round=_int_keys(data.get("last_draw_round"), int),
            current_round=int(data.get("current_round", 0)),
            total_draws=int(data.get("total_draws", 0)),
            current_probabilities=_int_keys(data.get("current_probabilities"), float),
            min_pool_size=int(data.get("min_pool_size", defaults.min_pool_size)),
            max_gap_threshold=int(data.get("max_gap_threshold", defaults.max_gap_threshold)),
            cold_start_boost=float(data.get("cold_start_boost", defaults.cold_start_boost)),
            decay_factor=float(data.get("decay_factor", defaults.decay_factor)),
            rows=int(data.get("rows", 0)),
            cols=int(data.get("cols", 0)),
            numbers=[int(n) for n in data.get("numbers", [])],
            number_range_start=int(data.get("number_range_start", 0)),
            number_range_end=int(data.get("number_range_end", 0)),
            blacklist=[int(n) for n in data.get("blacklist", [])],
            whitelist=[int(n) for n in data.get("whitelist", [])],
            whitelist_only_mode=_bool(data.get("whitelist_only_mode", False)),
        )
