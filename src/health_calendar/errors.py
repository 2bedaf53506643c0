"""Exception hierarchy for health-calendar."""


class HealthCalendarError(Exception):
    """Base class for all health-calendar errors."""


class UnknownCategoryError(HealthCalendarError, KeyError):
    """Raised when a category name is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown category '{name}'")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class SourceQueryError(HealthCalendarError):
    """Raised by a sample source when a query fails internally."""


class ProviderUnavailableError(HealthCalendarError):
    """Raised when an external provider cannot be reached at all.

    Typically an authorization failure. Unlike per-record failures this is
    never counted and swallowed; it aborts the surrounding batch.
    """


class RecordCreationError(HealthCalendarError):
    """Raised when a single calendar record could not be created."""


class RecordDeletionError(HealthCalendarError):
    """Raised when a single calendar record could not be deleted."""


class RecordNotFoundError(RecordDeletionError):
    """Raised when the record to delete no longer exists."""


class RangeNotFoundError(HealthCalendarError, KeyError):
    """Raised when a synced range id is not in the ledger."""

    def __init__(self, range_id: str) -> None:
        super().__init__(f"Synced range '{range_id}' not found")
        self.range_id = range_id

    def __str__(self) -> str:
        return self.args[0]
