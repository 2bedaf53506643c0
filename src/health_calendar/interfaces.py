"""Contracts for the external collaborators the core depends on."""

from abc import ABC, abstractmethod
from datetime import datetime

from .categories import Category
from .models import RawSample


class SampleSource(ABC):
    """Yields raw samples for a category over an end-exclusive range."""

    @abstractmethod
    async def fetch(self, category: Category, start: datetime, end: datetime) -> list[RawSample]:
        """Fetch individual samples starting in ``[start, end)``.

        Returns an empty list when there is no data.

        Raises:
            SourceQueryError: If the provider query fails internally.
        """

    @abstractmethod
    async def fetch_aggregated_daily(
        self, category: Category, start: datetime, end: datetime
    ) -> list[RawSample]:
        """Fetch one all-day sample per day with a nonzero cumulative sum.

        Raises:
            SourceQueryError: If the provider query fails internally.
        """


class RecordSink(ABC):
    """Creates and deletes calendar-like records."""

    @abstractmethod
    async def create(self, sample: RawSample, category: Category) -> str:
        """Create one record for ``sample`` and return its identifier.

        Raises:
            RecordCreationError: If this record could not be created.
            ProviderUnavailableError: If the provider cannot be reached at all.
        """

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Delete a record by identifier.

        Raises:
            RecordNotFoundError: If the record no longer exists.
            RecordDeletionError: If the record could not be deleted.
            ProviderUnavailableError: If the provider cannot be reached at all.
        """


class KeyValueStore(ABC):
    """Blob store keyed by string."""

    @abstractmethod
    async def get_blob(self, key: str) -> bytes | None:
        """Return the blob stored under ``key`` or None."""

    @abstractmethod
    async def set_blob(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous blob."""


class TextSummaryService(ABC):
    """Opaque text generation from a prompt."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Generate text for ``prompt``; raises on failure."""
