"""Exception types raised by the kite simulator.

Configuration and snapshot problems fail fast at construction/import
boundaries. Numeric degeneracy during a run never raises: the affected
term falls back to zero and a counter is incremented instead.
"""


class KiteSimError(Exception):
    """Base class for all simulator errors."""


class ConfigurationError(KiteSimError, ValueError):
    """Non-physical configuration (negative mass, stiffness, length, ...)."""


class SnapshotValidationError(KiteSimError, ValueError):
    """Malformed or dimensionally inconsistent state snapshot."""
