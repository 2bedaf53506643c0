"""Record sink backed by a REST calendar API."""

from types import TracebackType

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .categories import Category
from .config import CalendarSettings
from .errors import (
    ProviderUnavailableError,
    RecordCreationError,
    RecordDeletionError,
    RecordNotFoundError,
)
from .interfaces import RecordSink
from .models import RawSample
from .records import build_record

logger = structlog.get_logger(__name__)

# Statuses worth another attempt
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
AUTH_STATUSES = frozenset({401, 403})


class TransientResponseError(Exception):
    """Raised for a retryable HTTP status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class HttpRecordSink(RecordSink):
    """Creates and deletes events through ``{base_url}/events``.

    Transient failures (5xx, 429, timeouts) are retried with exponential
    backoff. Authorization failures are never retried and abort the
    surrounding batch via ProviderUnavailableError.
    """

    def __init__(
        self, settings: CalendarSettings, client: httpx.AsyncClient | None = None
    ) -> None:
        """Initialize the sink.

        Args:
            settings: Calendar API settings.
            client: Optional preconfigured client; the sink closes only
                clients it created itself.
        """
        self._settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=settings.timeout_seconds)

    async def __aenter__(self) -> "HttpRecordSink":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._settings.token:
            headers["Authorization"] = f"Bearer {self._settings.token}"
        return headers

    async def create(self, sample: RawSample, category: Category) -> str:
        record = build_record(sample, category, marker=self._settings.marker)
        payload = record.model_dump(mode="json")
        if self._settings.calendar_id:
            payload["calendar_id"] = self._settings.calendar_id

        try:
            response = await self._request("POST", "/events", json=payload)
        except (TransientResponseError, httpx.TransportError) as e:
            raise RecordCreationError(f"Create failed after retries: {e}") from e

        if response.status_code not in (200, 201):
            raise RecordCreationError(f"Create failed: HTTP {response.status_code}")

        try:
            record_id = response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise RecordCreationError("Create response has no event id") from e

        logger.debug("record_created", record_id=record_id, category=category.name)
        return str(record_id)

    async def delete(self, record_id: str) -> None:
        try:
            response = await self._request("DELETE", f"/events/{record_id}")
        except (TransientResponseError, httpx.TransportError) as e:
            raise RecordDeletionError(f"Delete of {record_id} failed after retries: {e}") from e

        if response.status_code == 404:
            raise RecordNotFoundError(f"Event {record_id} not found")
        if response.status_code not in (200, 202, 204):
            raise RecordDeletionError(
                f"Delete of {record_id} failed: HTTP {response.status_code}"
            )
        logger.debug("record_deleted", record_id=record_id)

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        """Send a request with tenacity-managed retries.

        Raises:
            ProviderUnavailableError: On 401/403, or when the host refuses
                connections on every attempt.
            TransientResponseError: When retryable statuses persist.
            httpx.TransportError: When other transport errors persist.
        """
        url = f"{self._settings.base_url}{path}"
        delay = self._settings.retry_delay_seconds
        try:
            async for attempt_state in AsyncRetrying(
                stop=stop_after_attempt(self._settings.max_retries),
                wait=wait_exponential(multiplier=delay, min=delay, max=60),
                retry=retry_if_exception_type((TransientResponseError, httpx.TransportError)),
                reraise=True,
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    response = await self._client.request(
                        method, url, headers=self._headers, **kwargs
                    )
                    if response.status_code in AUTH_STATUSES:
                        logger.error(
                            "calendar_auth_failed", status=response.status_code, method=method
                        )
                        raise ProviderUnavailableError(
                            f"Calendar API rejected credentials: HTTP {response.status_code}"
                        )
                    if response.status_code in RETRYABLE_STATUSES:
                        logger.warning(
                            "calendar_http_retryable",
                            status=response.status_code,
                            method=method,
                            attempt=attempt,
                        )
                        raise TransientResponseError(response.status_code)
                    return response
        except httpx.ConnectError as e:
            raise ProviderUnavailableError(f"Calendar API unreachable: {e}") from e
        # Unreachable with reraise=True, but satisfies the type checker
        raise RuntimeError("Retries exhausted")
