"""Shared HTTP plumbing for video provider adapters."""

import logging
from abc import abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...domain.exceptions import (
    ProviderError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from ...domain.models.provider_state import LiveStatus, ResourceKind
from ...domain.ports.video_provider import VideoProviderPort

logger = logging.getLogger(__name__)

# Methods that may be repeated without side effects.
IDEMPOTENT_METHODS = frozenset({"GET", "DELETE"})


class ProviderHttpConfig(BaseModel):
    """Timeout and retry settings shared by all vendor adapters."""

    timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 0.5


class HttpVideoProviderAdapter(VideoProviderPort):
    """Base class wrapping an ``httpx.AsyncClient`` for a vendor REST API.

    Subclasses supply the client settings and translate payloads; this class
    maps transport failures onto the domain's provider errors and retries
    idempotent requests.
    """

    def __init__(
        self,
        http: ProviderHttpConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            http: Timeout and retry settings
            transport: Optional transport override (used by tests)
        """
        self._http = http
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @abstractmethod
    def _client_options(self) -> Dict[str, Any]:
        """Base URL, headers and auth for the vendor client."""
        pass

    async def initialize(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._http.timeout,
                transport=self._transport,
                **self._client_options(),
            )
            logger.info(f"✅ {self.provider.value} adapter initialized")

    async def shutdown(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        if self._client is None:
            raise RuntimeError(f"{self.provider.value} adapter not initialized")

        vendor = self.provider.value
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"{vendor} request timed out: {method} {path}", provider=vendor) from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"{vendor} unreachable: {e}", provider=vendor) from e

        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderUnavailableError(
                f"{vendor} returned {response.status_code} for {method} {path}",
                provider=vendor,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise ProviderRejectedError(
                f"{vendor} rejected {method} {path}: {response.status_code} {self._error_text(response)}",
                provider=vendor,
                status_code=response.status_code,
            )
        return response

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, retrying idempotent methods on transient failures.

        Raises:
            ProviderUnavailableError: Network error, timeout, 429 or 5xx
            ProviderRejectedError: Any other 4xx
        """
        method = method.upper()
        if method not in IDEMPOTENT_METHODS:
            return await self._send(method, path, **kwargs)

        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ProviderUnavailableError),
            stop=stop_after_attempt(max(1, self._http.max_retries)),
            wait=wait_exponential(multiplier=self._http.retry_delay, max=self._http.retry_delay * 8),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(f"🔁 Retrying {method} {path} (attempt {attempt.retry_state.attempt_number})")
                return await self._send(method, path, **kwargs)

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        return response.text[:200]

    def _malformed(self, method: str, path: str, reason: str) -> ProviderUnavailableError:
        """Error for a successful reply whose body cannot be used."""
        vendor = self.provider.value
        logger.warning(f"⚠️ Malformed {vendor} reply to {method} {path}: {reason}")
        return ProviderUnavailableError(
            f"{vendor} sent a malformed reply to {method} {path}: {reason}",
            provider=vendor,
        )

    def _json_body(self, response: httpx.Response, method: str, path: str) -> Dict[str, Any]:
        """Decode a reply that must be a JSON object.

        A proxy error page or a truncated body is treated like an outage, not
        a rejection.

        Raises:
            ProviderUnavailableError: If the body is not a JSON object
        """
        try:
            body = response.json()
        except ValueError as e:
            raise self._malformed(method, path, "body is not JSON") from e
        if not isinstance(body, dict):
            raise self._malformed(method, path, f"expected an object, got {type(body).__name__}")
        return body

    async def get_live_status(self, provider_input_id: str) -> LiveStatus:
        try:
            return await self._fetch_live_status(provider_input_id)
        except ProviderError as e:
            logger.warning(f"⚠️ Live status unavailable for {self.provider.value} input {provider_input_id}: {e}")
            return LiveStatus(is_live=False, warning=str(e))

    @abstractmethod
    async def _fetch_live_status(self, provider_input_id: str) -> LiveStatus:
        pass

    async def delete_resource(self, resource_id: str, kind: ResourceKind) -> bool:
        try:
            await self._request("DELETE", self._resource_path(resource_id, kind))
        except ProviderRejectedError as e:
            if e.status_code == 404:
                logger.info(f"ℹ️ {self.provider.value} {kind.value} {resource_id} already gone")
                return True
            logger.warning(f"⚠️ Could not delete {self.provider.value} {kind.value} {resource_id}: {e}")
            return False
        except ProviderError as e:
            logger.warning(f"⚠️ Could not delete {self.provider.value} {kind.value} {resource_id}: {e}")
            return False
        logger.info(f"🗑️ Deleted {self.provider.value} {kind.value} {resource_id}")
        return True

    @abstractmethod
    def _resource_path(self, resource_id: str, kind: ResourceKind) -> str:
        pass
