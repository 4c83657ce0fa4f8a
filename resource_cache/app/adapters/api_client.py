"""
REST client used as the loader for resource caches.
"""

from typing import Any, Dict, List, Optional

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.errors import ExternalServiceError, ResourceRequestError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..caching.controller import Loader


class ResourceApiClient:
    """Client for list endpoints that answer ``{"data": [...]}``."""

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.logger = get_logger("resource_cache.api_client")
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            expected_exception=(RetryError, ExternalServiceError),
            name="resource_api"
        )
        self._transport = transport
        self._get_json = retry_on_exception((httpx.TransportError,), config=self.retry_config)(self._request)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, path: str, params: Dict[str, Any]) -> Any:
        """Single GET.

        A 4xx answer raises ResourceRequestError, which the circuit breaker
        ignores. Any other non-2xx answer raises ExternalServiceError.
        """
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params=params, headers=self._headers())

        if response.is_success:
            self.logger.debug("Resource list retrieved", url=url, params=params)
            return response.json()

        payload = _error_payload(response)
        if response.is_client_error:
            self.logger.warning(
                "Resource list request rejected",
                url=url,
                params=params,
                status_code=response.status_code,
                status_message=payload.get("statusMessage"),
            )
            raise ResourceRequestError(
                message=f"Rejected with status {response.status_code}",
                details={"status_code": response.status_code, "path": path},
                data=payload,
            )

        self.logger.error(
            "Resource list request failed",
            url=url,
            params=params,
            status_code=response.status_code,
            status_message=payload.get("statusMessage"),
        )
        raise ExternalServiceError(
            service="resource_api",
            message=f"Unexpected status {response.status_code}",
            details={"status_code": response.status_code, "path": path},
            data=payload,
        )

    async def fetch_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET ``path`` and return the ``data`` array of the response."""
        query = {k: v for k, v in (params or {}).items() if v is not None}
        body = await self.circuit_breaker.call(self._get_json, path, query)
        if isinstance(body, dict) and isinstance(body.get("data"), list):
            return body["data"]
        if isinstance(body, list):
            return body
        return []

    def loader(self, path: str, params: Optional[Dict[str, Any]] = None) -> Loader:
        """Zero-argument loader bound to one endpoint and filter set."""
        async def _load() -> List[Dict[str, Any]]:
            return await self.fetch_list(path, params)

        return _load


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    """Error body as a dict with at least ``statusMessage`` when known."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        return {"statusMessage": response.reason_phrase or None}

    payload = dict(body)
    if not payload.get("statusMessage"):
        payload["statusMessage"] = payload.get("message") or response.reason_phrase or None
    return payload
