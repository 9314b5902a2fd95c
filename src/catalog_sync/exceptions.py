"""Exception hierarchy for the catalog sync engine."""


class CatalogSyncError(Exception):
    """Base class for all catalog sync errors."""

    pass


class ProviderError(CatalogSyncError):
    """Raised when the external media index cannot be queried."""

    pass


class PersistenceError(CatalogSyncError):
    """Raised when a catalog transaction fails and is rolled back."""

    pass


class SyncFailedError(CatalogSyncError):
    """Generic failure signal for a sync pass.

    There is no partial-success variant: the last-sync timestamp only advances
    when a pass completes.
    """

    pass


class SyncCancelledError(CatalogSyncError):
    """Raised when a pass is cancelled before it reaches persistence."""

    pass
