"""
Error types for fairdraw.

Configuration and count errors are raised synchronously to the caller of the
triggering operation. Persistence errors raised by an explicit load/save
propagate; the ones raised while auto-saving after a draw are logged by the
engine and do not invalidate the draw.
"""


class FairDrawError(Exception):
    """Base class for all fairdraw errors."""
    pass


class InvalidConfiguration(FairDrawError, ValueError):
    """Bad constructor or configuration arguments (empty universe, start > end, zero pool size)."""
    pass


class InvalidCount(FairDrawError, ValueError):
    """A batch draw was requested with a count of zero."""
    pass


class PoolTooSmall(FairDrawError, ValueError):
    """A batch draw asked for more ids than the current candidate pool holds."""

    def __init__(self, requested: int, pool_size: int):
        self.requested = requested
        self.pool_size = pool_size
        super().__init__(
            f"Cannot draw {requested} ids: candidate pool only holds {pool_size}"
        )


class SelectionImpossible(FairDrawError, RuntimeError):
    """Neither the weighted pick nor the uniform fallback could select an id."""
    pass


class PersistenceError(FairDrawError, OSError):
    """Reading or writing the state file failed."""
    pass


class SnapshotNotFound(FairDrawError, LookupError):
    """No stored snapshot matches the requested configuration."""
    pass
