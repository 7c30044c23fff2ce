"""
State persistence module for fairdraw.

Provides the snapshot record and the JSON file store that holds one snapshot
per deterministic ID.
"""

from .snapshot import DrawSnapshot
from .draw_state_store import DrawStateStore

__all__ = ["DrawSnapshot", "DrawStateStore"]
