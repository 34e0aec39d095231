"""Segmented tether engine.

Example:
    >>> from kitesim.tether import Tether, TetherProperties
    >>>
    >>> tether = Tether.from_kite(TetherProperties(), kite.get_attachment_points_state())
    >>> tether.update_tether_position_and_forces(0.0015)
    >>> tether.segment_tensions()
"""

from kitesim.tether.tether import (
    MIN_SEGMENT_LENGTH,
    Tether,
    TetherProperties,
)

__all__ = [
    "MIN_SEGMENT_LENGTH",
    "Tether",
    "TetherProperties",
]
