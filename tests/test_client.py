"""Tests for the bounded pool and the caching similarity client."""

import asyncio
import gc
import json

import httpx
import pytest

from feedmute.client import (
    BoundedPool,
    ComparisonPair,
    HttpOracleTransport,
    SimilarityClient,
)
from feedmute.errors import OracleRequestError
from feedmute.store import MemoryStore, comparison_key
from tests.helpers.feed_factory import FakeTransport, settle

CAT = "https://x/cat.png"


def _pairs(count: int):
    return [ComparisonPair(f"https://x/img{i}.png", CAT) for i in range(count)]


class TestBoundedPool:
    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            BoundedPool(0)

    def test_runs_at_most_limit_jobs(self):
        """Test that queued jobs wait for a free slot."""

        async def run():
            pool = BoundedPool(2)
            gates = [asyncio.Event() for _ in range(4)]
            started = []

            def job(i):
                async def work():
                    started.append(i)
                    await gates[i].wait()
                    return i

                return work

            futures = [pool.submit(job(i)) for i in range(4)]
            await settle()
            assert started == [0, 1]
            assert (pool.active, pool.pending) == (2, 2)

            gates[1].set()
            await settle()
            assert started == [0, 1, 2]

            for gate in gates:
                gate.set()
            return await asyncio.gather(*futures)

        assert asyncio.run(run()) == [0, 1, 2, 3]

    def test_job_exception_reaches_future(self):
        async def run():
            pool = BoundedPool(1)

            async def fail():
                raise RuntimeError("nope")

            future = pool.submit(fail)
            with pytest.raises(RuntimeError):
                await future
            assert pool.active == 0

        asyncio.run(run())


class TestSimilarityClient:
    def test_results_follow_input_order(self):
        transport = FakeTransport(scores={(f"https://x/img{i}.png", CAT): i / 10 for i in range(6)})
        client = SimilarityClient(transport, MemoryStore())

        results = asyncio.run(client.resolve_batch(_pairs(6)))

        assert [r.candidate for r in results] == [p.candidate for p in _pairs(6)]
        assert [r.similarity for r in results] == [i / 10 for i in range(6)]

    def test_cache_hit_skips_oracle(self):
        pair = ComparisonPair("https://x/catcopy.png", CAT)
        store = MemoryStore({comparison_key(pair.candidate, CAT): 0.7})
        transport = FakeTransport()
        client = SimilarityClient(transport, store)

        (result,) = asyncio.run(client.resolve_batch([pair]))

        assert result.similarity == 0.7
        assert result.cached
        assert transport.calls == []

    def test_cached_zero_is_a_hit(self):
        pair = ComparisonPair("https://x/dog.png", CAT)
        store = MemoryStore({pair.cache_key: 0.0})
        transport = FakeTransport()

        asyncio.run(SimilarityClient(transport, store).resolve_batch([pair]))

        assert transport.calls == []

    def test_overlapping_batches_call_oracle_once_per_pair(self):
        """A pair resolved by the first call is served from cache on the second."""
        a = ComparisonPair("https://x/a.png", CAT)
        b = ComparisonPair("https://x/b.png", CAT)
        c = ComparisonPair("https://x/c.png", CAT)
        transport = FakeTransport(scores={(a.candidate, CAT): 0.8125, (b.candidate, CAT): 0.25})
        store = MemoryStore()
        client = SimilarityClient(transport, store)

        async def run():
            first = await client.resolve_batch([a, b])
            second = await client.resolve_batch([b, c, a])
            return first, second

        first, second = asyncio.run(run())

        assert sorted(transport.calls) == sorted([(a.candidate, CAT), (b.candidate, CAT), (c.candidate, CAT)])
        assert second[2].similarity == first[0].similarity
        assert second[0].similarity == first[1].similarity
        assert store.data[a.cache_key] == 0.8125

    def test_duplicate_pairs_share_one_request(self):
        pair = ComparisonPair("https://x/a.png", CAT)
        transport = FakeTransport(scores={(pair.candidate, CAT): 0.6})
        client = SimilarityClient(transport, MemoryStore())

        results = asyncio.run(client.resolve_batch([pair, pair, pair]))

        assert len(results) == 3
        assert all(r.similarity == 0.6 for r in results)
        assert len(transport.calls) == 1

    def test_concurrent_calls_share_in_flight_requests(self):
        pair = ComparisonPair("https://x/a.png", CAT)
        transport = FakeTransport(scores={(pair.candidate, CAT): 0.6})
        client = SimilarityClient(transport, MemoryStore())

        async def run():
            return await asyncio.gather(client.resolve_batch([pair]), client.resolve_batch([pair]))

        first, second = asyncio.run(run())

        assert first[0].similarity == second[0].similarity == 0.6
        assert len(transport.calls) == 1

    def test_failure_scores_zero_without_aborting_siblings(self):
        ok = ComparisonPair("https://x/ok.png", CAT)
        bad = ComparisonPair("https://x/bad.png", CAT)
        transport = FakeTransport(scores={(ok.candidate, CAT): 0.9}, failures={(bad.candidate, CAT)})
        store = MemoryStore()
        client = SimilarityClient(transport, store)

        results = asyncio.run(client.resolve_batch([bad, ok]))

        assert [r.similarity for r in results] == [0.0, 0.9]
        assert bad.cache_key not in store.data
        assert store.data[ok.cache_key] == 0.9

    def test_unexpected_transport_error_stays_local_to_its_pair(self):
        flaky = ComparisonPair("https://x/flaky.png", CAT)
        match = ComparisonPair("https://x/catcopy.png", CAT)

        class ResettingTransport(FakeTransport):
            async def compare(self, img1, img2):
                if img1 == flaky.candidate:
                    raise ConnectionResetError("connection reset by peer")
                return await super().compare(img1, img2)

        store = MemoryStore()
        client = SimilarityClient(ResettingTransport(scores={(match.candidate, CAT): 0.9}), store)

        results = asyncio.run(client.resolve_batch([flaky, match]))

        assert [r.similarity for r in results] == [0.0, 0.9]
        assert flaky.cache_key not in store.data

    def test_failed_jobs_nobody_awaits_are_not_reported(self, monkeypatch):
        """Jobs left behind by a failing batch have their errors consumed."""
        client = SimilarityClient(FakeTransport(), MemoryStore())

        async def explode(pair):
            raise RuntimeError(f"lost {pair.candidate}")

        monkeypatch.setattr(client, "_request", explode)
        reported = []

        async def run():
            asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
            try:
                await client.resolve_batch(_pairs(3))
            except RuntimeError:
                pass
            await settle()
            gc.collect()

        asyncio.run(run())
        assert reported == []

    def test_failed_pair_is_retried_on_next_call(self):
        bad = ComparisonPair("https://x/bad.png", CAT)
        transport = FakeTransport(failures={(bad.candidate, CAT)})
        client = SimilarityClient(transport, MemoryStore())

        async def run():
            await client.resolve_batch([bad])
            transport.failures.clear()
            transport.scores[(bad.candidate, CAT)] = 0.75
            return await client.resolve_batch([bad])

        (result,) = asyncio.run(run())
        assert result.similarity == 0.75
        assert len(transport.calls) == 2

    def test_never_more_than_limit_in_flight(self):
        """Twelve gated requests with limit 5 never exceed five at once."""
        transport = FakeTransport(gated=True)
        client = SimilarityClient(transport, MemoryStore(), limit=5)

        async def run():
            task = asyncio.ensure_future(client.resolve_batch(_pairs(12)))
            await settle()
            assert transport.in_flight == 5
            assert client.pool.pending == 7

            released = 0
            while released < 12:
                transport.release_next()
                released += 1
                await settle()
                assert transport.in_flight <= 5
            return await task

        results = asyncio.run(run())

        assert len(results) == 12
        assert transport.max_in_flight == 5
        assert len(transport.calls) == 12

    def test_reentrant_calls_append_to_queue(self):
        transport = FakeTransport(gated=True)
        client = SimilarityClient(transport, MemoryStore(), limit=2)
        first_pairs = _pairs(3)
        second_pairs = [ComparisonPair(f"https://x/other{i}.png", CAT) for i in range(3)]

        async def run():
            first = asyncio.ensure_future(client.resolve_batch(first_pairs))
            await settle()
            second = asyncio.ensure_future(client.resolve_batch(second_pairs))
            await settle()
            assert client.pool.pending == 4
            while transport.in_flight or client.pool.pending:
                transport.release_next()
                await settle()
            return await first, await second

        first, second = asyncio.run(run())

        assert len(first) == 3 and len(second) == 3
        assert transport.max_in_flight == 2


class TestHttpOracleTransport:
    def _transport(self, handler) -> HttpOracleTransport:
        client = httpx.AsyncClient(base_url="http://oracle", transport=httpx.MockTransport(handler))
        return HttpOracleTransport("http://oracle", client=client)

    def _compare(self, transport: HttpOracleTransport) -> float:
        async def run():
            try:
                return await transport.compare(CAT, "https://x/dog.png")
            finally:
                await transport.close()

        return asyncio.run(run())

    def test_posts_pair_and_reads_similarity(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"similarity": 0.42})

        assert self._compare(self._transport(handler)) == 0.42
        assert seen == {"path": "/compare", "body": {"img1": CAT, "img2": "https://x/dog.png"}}

    def test_error_status_raises(self):
        transport = self._transport(lambda request: httpx.Response(500, json={"similarity": 0}))
        with pytest.raises(OracleRequestError):
            self._compare(transport)

    def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(OracleRequestError):
            self._compare(self._transport(handler))

    def test_missing_similarity_raises(self):
        transport = self._transport(lambda request: httpx.Response(200, json={"other": 1}))
        with pytest.raises(OracleRequestError):
            self._compare(transport)
