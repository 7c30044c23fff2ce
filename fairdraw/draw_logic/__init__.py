"""
Draw logic for fairdraw.

This package contains the identifier space, the balanced draw engine, and its
grid front end.
"""

from fairdraw.draw_logic.identifier_space import IdentifierSpace
from fairdraw.draw_logic.balanced_draw import BalancedDraw
from fairdraw.draw_logic.plane import BalancedDrawPlane

__all__ = ["IdentifierSpace", "BalancedDraw", "BalancedDrawPlane"]
