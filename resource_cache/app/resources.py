"""
Resource families backed by the scoped cache.

Each family is an independent ScopedResourceCache with its own loader:

- change-order original items, scoped by corporation + project, keyed by
  purchase order
- labor change-order items, same shape, labor endpoint
- active projects of a corporation, scoped and keyed by corporation
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx

from shared.circuit_breaker import CircuitBreaker
from shared.config import CacheSettings, get_settings
from shared.errors import ExternalServiceError
from shared.logging import corporation_context, get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError

from .adapters.api_client import ResourceApiClient
from .caching.controller import Loader, ScopedResourceCache
from .caching.keys import Identifier

PURCHASE_ORDER_ITEMS_PATH = "/api/purchase-order-items"
LABOR_PURCHASE_ORDER_ITEMS_PATH = "/api/labor-purchase-order-items"
PROJECTS_PATH = "/api/projects"

Item = Dict[str, Any]


def change_order_items_cache(client: ResourceApiClient, **options) -> ScopedResourceCache[Item]:
    """Cache of purchase-order line items shown as a change order's original order."""
    def loader_factory(scope_parts: Tuple[Identifier, ...], purchase_order_uuid: Identifier) -> Loader:
        return client.loader(PURCHASE_ORDER_ITEMS_PATH, {"purchase_order_uuid": purchase_order_uuid})

    return ScopedResourceCache(
        "change_order_items",
        loader_factory,
        fallback_error="Failed to load items",
        **options
    )


def labor_change_order_items_cache(client: ResourceApiClient, **options) -> ScopedResourceCache[Item]:
    """Cache of labor purchase-order items used by labor change orders."""
    def loader_factory(scope_parts: Tuple[Identifier, ...], purchase_order_uuid: Identifier) -> Loader:
        return client.loader(LABOR_PURCHASE_ORDER_ITEMS_PATH, {"purchase_order_uuid": purchase_order_uuid})

    return ScopedResourceCache(
        "labor_change_order_items",
        loader_factory,
        fallback_error="Failed to load labor items",
        **options
    )


def corporation_projects_cache(client: ResourceApiClient, **options) -> ScopedResourceCache[Item]:
    """Cache of a corporation's active projects."""
    def loader_factory(scope_parts: Tuple[Identifier, ...], corporation_uuid: Identifier) -> Loader:
        async def _load() -> List[Item]:
            projects = await client.fetch_list(PROJECTS_PATH, {"corporation_uuid": corporation_uuid})
            # Projects without the flag count as active.
            return [dict(project) for project in projects if project.get("is_active") is not False]

        return _load

    return ScopedResourceCache(
        "corporation_projects",
        loader_factory,
        fallback_error="Failed to load projects",
        **options
    )


class ResourceCaches:
    """The three resource families wired to one API client."""

    def __init__(
        self,
        client: ResourceApiClient,
        *,
        share_inflight: bool = True,
        discard_stale: bool = False,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.logger = get_logger("resource_cache.resources")
        options = {
            "share_inflight": share_inflight,
            "discard_stale": discard_stale,
            "metrics": metrics,
        }
        self.change_order_items = change_order_items_cache(client, **options)
        self.labor_change_order_items = labor_change_order_items_cache(client, **options)
        self.corporation_projects = corporation_projects_cache(client, **options)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[CacheSettings] = None,
        *,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ResourceCaches":
        """Build the caches and their API client from settings."""
        settings = settings or get_settings()
        client = ResourceApiClient(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout,
            retry_config=RetryConfig(
                max_attempts=settings.retry_max_attempts,
                base_delay=settings.retry_base_delay,
            ),
            circuit_breaker=CircuitBreaker(
                failure_threshold=settings.breaker_failure_threshold,
                recovery_timeout=settings.breaker_recovery_timeout,
                expected_exception=(RetryError, ExternalServiceError),
                name="resource_api",
            ),
            transport=transport,
        )
        return cls(
            client,
            share_inflight=settings.share_inflight,
            discard_stale=settings.discard_stale,
            metrics=metrics,
        )

    def _families(self) -> List[ScopedResourceCache[Item]]:
        return [self.change_order_items, self.labor_change_order_items, self.corporation_projects]

    async def ensure_original_order_items(
        self,
        corporation_uuid: Identifier,
        project_uuid: Identifier,
        purchase_order_uuid: Identifier,
        force: bool = False,
    ) -> List[Item]:
        with corporation_context(corporation_uuid):
            return await self.change_order_items.ensure((corporation_uuid, project_uuid), purchase_order_uuid, force=force)

    async def ensure_labor_po_items(
        self,
        corporation_uuid: Identifier,
        project_uuid: Identifier,
        purchase_order_uuid: Identifier,
        force: bool = False,
    ) -> List[Item]:
        with corporation_context(corporation_uuid):
            return await self.labor_change_order_items.ensure((corporation_uuid, project_uuid), purchase_order_uuid, force=force)

    async def ensure_projects(self, corporation_uuid: Identifier, force: bool = False) -> List[Item]:
        with corporation_context(corporation_uuid):
            return await self.corporation_projects.ensure((corporation_uuid,), corporation_uuid, force=force)

    def clear_project(self, corporation_uuid: Identifier, project_uuid: Identifier) -> None:
        """Forget every order's items cached for one project."""
        self.change_order_items.clear_scope((corporation_uuid, project_uuid))
        self.labor_change_order_items.clear_scope((corporation_uuid, project_uuid))

    def clear_corporation(self, corporation_uuid: Identifier) -> None:
        """Forget a corporation's project list."""
        self.corporation_projects.clear_scope((corporation_uuid,))

    def clear(self) -> None:
        """Forget everything, e.g. on logout."""
        for cache in self._families():
            cache.clear_all()
        self.logger.info("Cleared all resource caches")

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {cache.name: cache.stats() for cache in self._families()}
