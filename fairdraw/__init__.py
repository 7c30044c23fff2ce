"""
fairdraw: fairness-balanced weighted random draws.

Repeatedly picks ids from a fixed universe (roll-call numbers, grid cells) so
that selection frequency evens out over time while every single draw stays
random.
"""

from fairdraw.draw_logic import BalancedDraw, BalancedDrawPlane, IdentifierSpace
from fairdraw.errors import (
    FairDrawError,
    InvalidConfiguration,
    InvalidCount,
    PersistenceError,
    PoolTooSmall,
    SelectionImpossible,
    SnapshotNotFound,
)
from fairdraw.state import DrawSnapshot, DrawStateStore

__version__ = "0.1.0"

__all__ = [
    "BalancedDraw",
    "BalancedDrawPlane",
    "IdentifierSpace",
    "DrawSnapshot",
    "DrawStateStore",
    "FairDrawError",
    "InvalidConfiguration",
    "InvalidCount",
    "PersistenceError",
    "PoolTooSmall",
    "SelectionImpossible",
    "SnapshotNotFound",
]
