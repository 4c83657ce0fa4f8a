"""
Integration tests for resource caches over a fake REST API.
"""

import asyncio

import httpx
import pytest
from prometheus_client import CollectorRegistry

from resource_cache.app.resources import PURCHASE_ORDER_ITEMS_PATH, ResourceCaches
from shared.config import CacheSettings
from shared.logging import configure_logging
from shared.metrics import MetricsCollector


class SlowApi:
    """Fake API that holds every response until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.requests = []
        self.items = [{"item_uuid": "x", "quantity": 5}]
        self.status_code = 200

    async def handle(self, request):
        self.requests.append(request)
        await self.release.wait()
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"statusMessage": "Purchase order locked"})
        return httpx.Response(200, json={"data": list(self.items)})


class AsyncHandlerTransport(httpx.AsyncBaseTransport):
    """Transport delegating to an async handler."""

    def __init__(self, handler):
        self.handler = handler

    async def handle_async_request(self, request):
        return await self.handler(request)


class TestResourceCacheFlow:
    """End-to-end flow through settings, client, cache and metrics."""

    @pytest.fixture
    def api(self):
        """Fake slow API."""
        return SlowApi()

    @pytest.fixture
    def registry(self):
        """Isolated metrics registry."""
        return CollectorRegistry()

    @pytest.fixture
    def caches(self, api, registry):
        """ResourceCaches built from settings."""
        configure_logging("resource_cache", "warning")
        settings = CacheSettings(api_base_url="http://erp.test", retry_max_attempts=1)
        return ResourceCaches.from_settings(
            settings,
            metrics=MetricsCollector(registry=registry),
            transport=AsyncHandlerTransport(api.handle),
        )

    @pytest.mark.asyncio
    async def test_components_share_one_request(self, caches, api, registry):
        """Several views asking for the same order items cause one HTTP request."""
        views = [
            asyncio.ensure_future(caches.ensure_original_order_items("c1", "p1", "po-1"))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        assert caches.change_order_items.get_loading(["c1", "p1"], "po-1") is True

        api.release.set()
        results = await asyncio.gather(*views)

        assert len(api.requests) == 1
        assert api.requests[0].url.path == PURCHASE_ORDER_ITEMS_PATH
        assert all(result == [{"item_uuid": "x", "quantity": 5}] for result in results)
        assert registry.get_sample_value("resource_cache_dedup_total", {"cache": "change_order_items"}) == 2.0

    @pytest.mark.asyncio
    async def test_force_refresh_and_failure(self, caches, api):
        """A forced refresh picks up new data; a failed one reports the server message."""
        api.release.set()
        await caches.ensure_original_order_items("c1", "p1", "po-1")

        api.items = [{"item_uuid": "x", "quantity": 9}]
        refreshed = await caches.ensure_original_order_items("c1", "p1", "po-1", force=True)
        assert refreshed == [{"item_uuid": "x", "quantity": 9}]

        api.status_code = 423
        failed = await caches.ensure_original_order_items("c1", "p1", "po-1", force=True)
        assert failed == []
        assert caches.change_order_items.get_error(["c1", "p1"], "po-1") == "Purchase order locked"
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, caches, api):
        """clear() forces every family to fetch again."""
        api.release.set()
        await caches.ensure_original_order_items("c1", "p1", "po-1")

        caches.clear()
        await caches.ensure_original_order_items("c1", "p1", "po-1")

        assert len(api.requests) == 2
