"""Stateless similarity oracle: fetch two images, hash both, compare."""

from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx
import imagehash

from ..config import Settings
from ..errors import HashComputationError, ImageFetchError
from ..hashing import compute_hash, similarity
from ..logging import get_logger

logger = get_logger(__name__)

ImageFetcher = Callable[[str], Awaitable[bytes]]

_USER_AGENT = "feedmute-oracle/0.1"


@dataclass(frozen=True)
class BatchPair:
    """One pair submitted to the batch comparison."""
    img1: str
    img2: str
    cache_key: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    """Result for one batch pair, echoing the caller's cache key."""
    img1: str
    img2: str
    similarity: float
    cache_key: Optional[str] = None


class HttpImageFetcher:
    """Download image bytes over HTTP with a shared async client."""

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": _USER_AGENT, "Accept": "image/*,*/*;q=0.8"},
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    async def __call__(self, url: str) -> bytes:
        client = await self._get_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ImageFetchError(f"Failed to fetch {url}: {exc}") from exc
        return response.content

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


class SimilarityOracle:
    """
    Compare images by perceptual hash.

    Holds no state between calls beyond the fetcher's connection pool.
    Image problems never raise: an unusable image simply scores 0.
    """

    def __init__(self, fetcher: ImageFetcher, settings: Optional[Settings] = None):
        self._fetcher = fetcher
        self._settings = settings or Settings()

    async def hash_url(self, url: str) -> Optional[imagehash.ImageHash]:
        """
        Fetch and hash one image.

        Args:
            url: Image URL

        Returns:
            The image hash, or None if the image could not be fetched or decoded
        """
        try:
            data = await self._fetcher(url)
            return compute_hash(
                data,
                hash_size=self._settings.hash_size,
                resize_to=self._settings.resize_to,
            )
        except (ImageFetchError, HashComputationError) as exc:
            logger.warning(f"Error hashing image {url}: {exc}")
            return None

    async def compare(self, url_a: str, url_b: str) -> float:
        """
        Similarity of two images in [0, 1].

        Args:
            url_a: First image URL
            url_b: Second image URL

        Returns:
            1 minus the normalized Hamming distance of the two hashes
        """
        hash_a = await self.hash_url(url_a)
        hash_b = await self.hash_url(url_b)
        score = similarity(hash_a, hash_b)
        logger.debug(f"Similarity {url_a} vs {url_b}: {score:.3f}")
        return score

    async def compare_batch(self, pairs: Sequence[BatchPair]) -> List[BatchResult]:
        """Compare pairs in order; result i always belongs to pair i."""
        results: List[BatchResult] = []
        for pair in pairs:
            score = await self.compare(pair.img1, pair.img2)
            results.append(BatchResult(pair.img1, pair.img2, score, pair.cache_key))
        return results
