"""
Unit Tests: Region Routing

Tests:
    - Region discovery, caching and coalesced probes
    - One regional client per region, even under concurrent first use
    - Mismatch correction with and without a region hint
    - Repeated mismatch and unknown bucket handling
    - Degraded (single-region) mode
"""

import asyncio

from bucketmesh.core.errors import ErrorCode, TransportError
from bucketmesh.observability.metrics import MetricsRegistry
from bucketmesh.routing.pool import RegionalClientPool
from bucketmesh.routing.resolver import RegionResolver
from bucketmesh.storage.backends import InMemoryClientFactory
from bucketmesh.tests.support import make_config, make_router, make_service


class TestRegionResolver:
    """Tests for bucket → region resolution."""

    def test_resolve_probes_once_then_uses_cache(self):
        """Test that a second lookup is answered from the cache."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            pool = RegionalClientPool(InMemoryClientFactory(service))
            resolver = RegionResolver(pool, "us-east-1")

            first = await resolver.resolve("photos")
            second = await resolver.resolve("photos")

            assert first.unwrap() == "eu-west-1"
            assert second.unwrap() == "eu-west-1"
            assert service.count_calls("head_bucket", "photos") == 1
            assert resolver.peek("photos") == "eu-west-1"

        asyncio.run(scenario())

    def test_probe_goes_through_default_region(self):
        """Test that discovery uses the default-region client."""
        async def scenario():
            service = make_service(photos="ap-south-1")
            factory = InMemoryClientFactory(service)
            pool = RegionalClientPool(factory)
            resolver = RegionResolver(pool, "us-east-1")

            await resolver.resolve("photos")

            assert service.calls == [("us-east-1", "head_bucket", "photos")]
            assert pool.regions() == ["us-east-1"]

        asyncio.run(scenario())

    def test_concurrent_lookups_share_one_probe(self):
        """Test that simultaneous first lookups send a single probe."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            pool = RegionalClientPool(InMemoryClientFactory(service, latency_s=0.01))
            resolver = RegionResolver(pool, "us-east-1")

            results = await asyncio.gather(*(resolver.resolve("photos") for _ in range(8)))

            assert [r.unwrap() for r in results] == ["eu-west-1"] * 8
            assert service.count_calls("head_bucket") == 1

        asyncio.run(scenario())

    def test_report_mismatch_overwrites_cache(self):
        """Test that a signaled region replaces the cached one without probing."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            pool = RegionalClientPool(InMemoryClientFactory(service))
            resolver = RegionResolver(pool, "us-east-1")
            resolver.prime("photos", "us-west-2")

            corrected = resolver.report_mismatch("photos", "eu-west-1")

            assert corrected == "eu-west-1"
            assert (await resolver.resolve("photos")).unwrap() == "eu-west-1"
            assert service.count_calls("head_bucket") == 0

        asyncio.run(scenario())

    def test_unknown_bucket_is_not_cached(self):
        """Test that a failed probe leaves no cache entry behind."""
        async def scenario():
            service = make_service()
            pool = RegionalClientPool(InMemoryClientFactory(service))
            resolver = RegionResolver(pool, "us-east-1")

            result = await resolver.resolve("missing")

            assert result.is_err()
            assert result.error.code is ErrorCode.REQUEST_NO_SUCH_BUCKET
            assert resolver.peek("missing") is None
            assert resolver.cached_regions() == {}

        asyncio.run(scenario())

    def test_transient_probe_failure_passes_through(self):
        """Test that a transport failure while probing keeps its code."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("head_bucket", times=1)
            pool = RegionalClientPool(InMemoryClientFactory(service))
            resolver = RegionResolver(pool, "us-east-1")

            first = await resolver.resolve("photos")
            second = await resolver.resolve("photos")

            assert first.error.code is ErrorCode.TRANSPORT_UNAVAILABLE
            assert second.unwrap() == "eu-west-1"

        asyncio.run(scenario())

    def test_metrics_are_labelled_by_region(self):
        """Test that many buckets in one region share one series."""
        async def scenario():
            buckets = {f"logs-{i}": "eu-west-1" for i in range(20)}
            service = make_service(**buckets)
            metrics = MetricsRegistry()
            pool = RegionalClientPool(InMemoryClientFactory(service))
            resolver = RegionResolver(pool, "us-east-1", metrics)

            for bucket in buckets:
                await resolver.resolve(bucket)
                await resolver.resolve(bucket)

            assert list(metrics.region_probes.collect()) == [({"region": "us-east-1"}, 20.0)]
            assert list(metrics.region_cache_hits.collect()) == [({"region": "eu-west-1"}, 20.0)]

        asyncio.run(scenario())


class TestRegionalClientPool:
    """Tests for the per-region client registry."""

    def test_single_client_per_region_under_concurrency(self):
        """Test that racing first users of a region get the same client."""
        async def scenario():
            service = make_service()
            factory = InMemoryClientFactory(service, creation_delay_s=0.01)
            pool = RegionalClientPool(factory)

            results = await asyncio.gather(*(pool.get("eu-west-1") for _ in range(10)))

            clients = {id(r.unwrap()) for r in results}
            assert len(clients) == 1
            assert len(factory.created_for("eu-west-1")) == 1
            assert len(pool) == 1
            assert "eu-west-1" in pool

        asyncio.run(scenario())

    def test_regions_do_not_share_clients(self):
        """Test that each region gets its own client."""
        async def scenario():
            factory = InMemoryClientFactory(make_service())
            pool = RegionalClientPool(factory)

            east = (await pool.get("us-east-1")).unwrap()
            west = (await pool.get("eu-west-1")).unwrap()

            assert east is not west
            assert east.region == "us-east-1"
            assert west.region == "eu-west-1"
            assert pool.regions() == ["eu-west-1", "us-east-1"]

        asyncio.run(scenario())

    def test_close_closes_every_client(self):
        """Test that close releases all clients and refuses new ones."""
        async def scenario():
            factory = InMemoryClientFactory(make_service())
            pool = RegionalClientPool(factory)
            await pool.get("us-east-1")
            await pool.get("eu-west-1")

            await pool.close()

            assert pool.is_closed
            assert all(client.closed for client in factory.created)
            assert len(pool) == 0
            after = await pool.get("us-east-1")
            assert after.error.code is ErrorCode.INTERNAL_ERROR

        asyncio.run(scenario())

    def test_client_created_after_close_is_discarded(self):
        """Test that a client finishing creation after close is closed too."""
        async def scenario():
            factory = InMemoryClientFactory(make_service(), creation_delay_s=0.02)
            pool = RegionalClientPool(factory)

            pending = asyncio.ensure_future(pool.get("eu-west-1"))
            await asyncio.sleep(0.005)
            await pool.close()
            result = await pending

            assert result.is_err()
            assert factory.created[0].closed

        asyncio.run(scenario())


class TestRegionAwareRouter:
    """Tests for routed execution."""

    def test_wrong_cached_region_is_corrected(self):
        """Test that a mismatch re-routes once and updates the cache."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)
            router.resolver.prime("photos", "us-west-2")

            result = await router.put_object("photos", "cat.jpg", b"meow")

            assert result.is_ok()
            assert service.object_data("photos", "cat.jpg") == b"meow"
            assert router.resolver.peek("photos") == "eu-west-1"
            assert router.metrics.region_mismatches.get(region="eu-west-1") == 1
            assert service.count_calls("put_object") == 2

            again = await router.head_object("photos", "cat.jpg")
            assert again.unwrap().size_bytes == 4
            assert router.metrics.region_mismatches.total() == 1

        asyncio.run(scenario())

    def test_mismatch_without_hint_refreshes_region(self):
        """Test that a hintless mismatch triggers a fresh probe."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)
            (await router.put_object("photos", "cat.jpg", b"meow")).unwrap()
            probes = service.count_calls("head_bucket")

            service.set_redirect_hint("photos", None)
            router.resolver.prime("photos", "us-west-2")
            result = await router.head_object("photos", "cat.jpg")

            assert result.is_ok()
            assert service.count_calls("head_bucket") == probes + 1
            assert router.resolver.peek("photos") == "eu-west-1"

        asyncio.run(scenario())

    def test_second_mismatch_is_fatal(self):
        """Test that a corrected region that also mismatches is not retried."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.set_redirect_hint("photos", "ap-south-1")
            router, _ = make_router(service)
            router.resolver.prime("photos", "us-west-2")

            result = await router.head_object("photos", "cat.jpg")

            assert result.is_err()
            assert result.error.code is ErrorCode.ROUTING_REPEATED_MISMATCH
            assert service.count_calls("head_object") == 2

        asyncio.run(scenario())

    def test_unknown_bucket_is_forgotten(self):
        """Test that a vanished bucket drops its cache entry."""
        async def scenario():
            service = make_service()
            router, _ = make_router(service)
            router.resolver.prime("gone", "eu-west-1")

            result = await router.get_object("gone", "k")

            assert result.error.code is ErrorCode.REQUEST_NO_SUCH_BUCKET
            assert router.resolver.peek("gone") is None

        asyncio.run(scenario())

    def test_other_errors_are_returned_unchanged(self):
        """Test that non-routing failures are not retried by the router."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            service.fail("get_object", error=lambda: TransportError.throttled("get_object"))
            router, _ = make_router(service)

            result = await router.get_object("photos", "cat.jpg")

            assert result.error.code is ErrorCode.TRANSPORT_THROTTLED
            assert service.count_calls("get_object") == 1

        asyncio.run(scenario())

    def test_reads_list_and_delete(self):
        """Test the read surface end to end through one router."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)
            for name in ("a", "b", "c"):
                (await router.put_object("photos", f"cats/{name}.txt", name.encode())).unwrap()
            (await router.put_object("photos", "dogs/d.txt", b"d")).unwrap()

            data, info = (await router.get_object("photos", "cats/b.txt")).unwrap()
            assert data == b"b"
            assert info.content_type == "text/plain"

            page = (await router.list_objects("photos", prefix="cats/", limit=2)).unwrap()
            assert [o.key for o in page.objects] == ["cats/a.txt", "cats/b.txt"]
            assert page.next_cursor is not None

            keys = [o.key async for o in router.iter_objects("photos", page_size=1)]
            assert keys == ["cats/a.txt", "cats/b.txt", "cats/c.txt", "dogs/d.txt"]

            assert (await router.delete_object("photos", "dogs/d.txt")).unwrap()
            assert (await router.object_exists("photos", "dogs/d.txt")).unwrap() is False
            assert (await router.object_exists("photos", "cats/a.txt")).unwrap() is True

        asyncio.run(scenario())

    def test_value_round_trip(self):
        """Test JSON encode on put and decode on get."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, _ = make_router(service)

            receipt = (await router.put_value("photos", "meta.json", {"tags": ["cat"]})).unwrap()
            value = (await router.get_value("photos", "meta.json")).unwrap()

            assert receipt.content_type == "application/json"
            assert value == {"tags": ["cat"]}

        asyncio.run(scenario())

    def test_degraded_mode_uses_default_region_only(self):
        """Test that disabled cross-region routing never probes or re-routes."""
        async def scenario():
            service = make_service(home="us-east-1", photos="eu-west-1")
            router, factory = make_router(service, make_config(cross_region=False))

            home = await router.put_object("home", "k", b"x")
            away = await router.head_object("photos", "k")

            assert home.is_ok()
            assert away.error.code is ErrorCode.ROUTING_REGION_MISMATCH
            assert service.count_calls("head_bucket") == 0
            assert [c.region for c in factory.created] == ["us-east-1"]
            assert (await router.resolve_region("photos")).unwrap() == "us-east-1"

        asyncio.run(scenario())

    def test_context_manager_closes_clients(self):
        """Test that leaving the router closes its regional clients."""
        async def scenario():
            service = make_service(photos="eu-west-1")
            router, factory = make_router(service)
            async with router:
                (await router.put_object("photos", "k", b"x")).unwrap()

            assert factory.created
            assert all(client.closed for client in factory.created)
            assert router.pool.is_closed

        asyncio.run(scenario())
