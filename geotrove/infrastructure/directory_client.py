"""HTTP Collectible Directory — httpx client with retry, backoff, and error mapping.

Invariants:
    - Rate limits (429): backoff respects the Retry-After header (seconds)
    - Transient errors (5xx, connection, timeout): at most policy.max_attempts retries
    - Client errors (4xx except 429): immediate DirectoryRejectedError, no retry;
      the directory's {"error": "..."} message becomes the user message
    - Exhausted retries: DirectoryUnavailableError (core/errors.py)
    - Unusable records in a nearby listing are dropped and logged one by one;
      only an unreadable envelope fails the whole listing
    - A collectible the pin body cannot describe raises PinDetailsError before
      any request is sent

Design Decisions:
    - Wrapper over raw httpx.AsyncClient: isolates retry logic from the services
    - Injected client and sleep: tests use httpx.MockTransport and a no-op sleep
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from geotrove.core.backoff import RetryPolicy, RetryState
from geotrove.core.domain_types import Collectible, CollectibleId
from geotrove.core.errors import (
    DirectoryRejectedError, DirectoryUnavailableError, ErrorContext,
    PinDetailsError,
)
from geotrove.schemas.collectible import (
    CollectiblePayload, CollectRequest, NearbyResponse, PinRequest, PinResponse,
)

logger = logging.getLogger(__name__)

_RATE_LIMITED = 429


class _RetryableStatus(Exception):
    def __init__(self, status_code: int, retry_after_ms: int | None):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms


def _retry_after_ms(response: httpx.Response) -> int | None:
    """Retry-After header in milliseconds (integer seconds form only)."""
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return int(value) * 1000
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class HttpCollectibleDirectory:
    """CollectibleDirectory over the REST API."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout_seconds,
        )
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, jitter=0.25)
        self._sleep = sleep

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- CollectibleDirectory ---------------------------------------------

    async def list_nearby(
        self, lat: float, lng: float, radius_meters: float,
    ) -> list[Collectible]:
        response = await self._request(
            "list_nearby", "GET", "/nft/nearby",
            params={"latitude": lat, "longitude": lng, "radius": radius_meters},
        )
        try:
            listing = NearbyResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DirectoryUnavailableError(
                f"malformed nearby listing: {e}", "list_nearby",
            ) from e

        collectibles: list[Collectible] = []
        for raw in listing.nfts:
            try:
                payload = CollectiblePayload.model_validate(raw)
            except ValidationError as e:
                record_id = raw.get("id") if isinstance(raw, dict) else None
                logger.warning(
                    f"Skipping malformed collectible record: {e.error_count()} error(s)",
                    extra={"collectible_id": record_id, "error_code": "MALFORMED_RECORD"},
                )
                continue
            collectible = payload.to_collectible()
            if collectible is None:
                logger.warning(
                    f"Skipping collectible with unusable coordinates "
                    f"({payload.latitude!r}, {payload.longitude!r})",
                    extra={"collectible_id": payload.id, "error_code": "INVALID_COORDINATES"},
                )
                continue
            collectibles.append(collectible)
        return collectibles

    async def pin(self, collectible: Collectible) -> CollectibleId:
        try:
            body = PinRequest.from_collectible(collectible)
        except ValidationError as e:
            first = e.errors()[0]
            field_name = str(first["loc"][0]) if first["loc"] else "collectible"
            raise PinDetailsError(field_name, first["msg"]) from e
        response = await self._request(
            "pin", "POST", "/nft/pin", json=body.model_dump(exclude_none=True),
        )
        try:
            created = PinResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DirectoryUnavailableError(
                f"malformed pin response: {e}", "pin",
            ) from e
        if created.collectible_id is None:
            raise DirectoryUnavailableError("pin response carried no id", "pin")
        return CollectibleId(created.collectible_id)

    async def collect(
        self, collectible_id: CollectibleId, lat: float, lng: float,
    ) -> dict:
        body = CollectRequest(
            nft_id=collectible_id, user_latitude=lat, user_longitude=lng,
        )
        response = await self._request(
            "collect", "POST", "/nft/collect", json=body.model_dump(),
            context=ErrorContext(collectible_id=collectible_id),
        )
        try:
            result = response.json()
        except ValueError:
            return {}
        return result if isinstance(result, dict) else {"result": result}

    # --- Transport --------------------------------------------------------

    async def _request(
        self, operation: str, method: str, path: str,
        context: ErrorContext | None = None, **kwargs: Any,
    ) -> httpx.Response:
        """Send with retry on transient failures. 4xx (except 429) fails immediately."""
        retry = RetryState(self.retry_policy)
        while True:
            try:
                response = await self.client.request(method, path, **kwargs)
                if response.status_code == _RATE_LIMITED or response.status_code >= 500:
                    raise _RetryableStatus(response.status_code, _retry_after_ms(response))
                if response.status_code >= 400:
                    message = _error_message(response)
                    logger.warning(
                        f"Directory rejected {operation} ({response.status_code}): {message}",
                        extra={"error_code": "DIRECTORY_REJECTED"},
                    )
                    raise DirectoryRejectedError(
                        message, operation, response.status_code, context=context,
                    )
                logger.info(
                    f"Directory {operation} succeeded",
                    extra={"attempt": retry.attempts + 1},
                )
                return response

            except (httpx.TransportError, _RetryableStatus) as e:
                retry_after_ms = getattr(e, "retry_after_ms", None)
                delay_ms = retry.next_delay_ms(random.random())  # nosec B311
                if delay_ms is None:
                    raise DirectoryUnavailableError(
                        f"{e} after {retry.attempts} retries", operation,
                        retry_after_ms=retry_after_ms, context=context,
                    ) from e
                delay_ms = retry_after_ms or delay_ms
                logger.warning(
                    f"Directory {operation} failed ({e}), retry after {delay_ms:.0f}ms",
                    extra={"attempt": retry.attempts},
                )
                await self._sleep(delay_ms / 1000)
