"""Cache-first, rate-limited resolution of image comparison pairs."""

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Dict, List, Optional, Sequence

from ..errors import OracleRequestError
from ..logging import get_logger
from ..store import KeyValueStore, comparison_key
from .pool import BoundedPool
from .transport import OracleTransport

logger = get_logger(__name__)


@dataclass(frozen=True)
class ComparisonPair:
    """A candidate feed image to compare against one reference image."""
    candidate: str
    reference: str

    @property
    def cache_key(self) -> str:
        return comparison_key(self.candidate, self.reference)


@dataclass(frozen=True)
class ComparisonResult:
    candidate: str
    reference: str
    similarity: float
    cached: bool = False


class SimilarityClient:
    """
    Turn comparison pairs into the fewest oracle calls possible.

    Scores come from the store when present. Misses go through a bounded
    pool so that no more than ``limit`` requests are ever in flight, and
    identical pairs already on their way to the oracle are shared rather
    than re-sent. Successful scores are written back to the store; failures
    score 0 for the current call only.
    """

    def __init__(self, transport: OracleTransport, store: KeyValueStore, limit: int = 5):
        self._transport = transport
        self._store = store
        self._pool = BoundedPool(limit)
        self._inflight: Dict[str, asyncio.Future] = {}
        self.requests_sent = 0

    @property
    def pool(self) -> BoundedPool:
        return self._pool

    async def resolve_batch(self, pairs: Sequence[ComparisonPair]) -> List[ComparisonResult]:
        """
        Resolve every pair to a similarity score.

        Args:
            pairs: Pairs to resolve; duplicates are allowed

        Returns:
            One result per input pair, in input order
        """
        results: List[Optional[ComparisonResult]] = [None] * len(pairs)
        waiting: List[tuple] = []

        for index, pair in enumerate(pairs):
            key = pair.cache_key
            cached = await self._store.get(key)
            if cached is not None:
                logger.debug(f"Using cached similarity for {pair.candidate} vs {pair.reference}: {cached}")
                results[index] = ComparisonResult(pair.candidate, pair.reference, float(cached), cached=True)
                continue
            waiting.append((index, pair, self._enqueue(pair)))

        for index, pair, future in waiting:
            # Shield so one caller being cancelled does not cancel a request
            # other callers are sharing.
            score = await asyncio.shield(future)
            results[index] = ComparisonResult(pair.candidate, pair.reference, score)

        return results  # type: ignore[return-value]

    def _enqueue(self, pair: ComparisonPair) -> asyncio.Future:
        key = pair.cache_key
        future = self._inflight.get(key)
        if future is None:
            future = self._pool.submit(lambda: self._request(pair))
            self._inflight[key] = future
            future.add_done_callback(partial(self._settled, key))
        return future

    def _settled(self, key: str, future: asyncio.Future) -> None:
        self._inflight.pop(key, None)
        # Callers that were cancelled or bailed out early never await the
        # future, so mark its exception as retrieved here.
        if not future.cancelled() and future.exception() is not None:
            logger.debug(f"Comparison job for {key} failed: {future.exception()!r}")

    async def _request(self, pair: ComparisonPair) -> float:
        self.requests_sent += 1
        try:
            score = await self._transport.compare(pair.candidate, pair.reference)
        except OracleRequestError as exc:
            logger.warning(f"Error comparing {pair.candidate} vs {pair.reference}: {exc}")
            return 0.0
        except Exception as exc:
            logger.warning(f"Unexpected error comparing {pair.candidate} vs {pair.reference}: {exc!r}")
            return 0.0

        await self._store.set(pair.cache_key, score)
        return score
