"""Similarity client: caching, deduplication and bounded concurrency."""

from .pool import BoundedPool
from .similarity import ComparisonPair, ComparisonResult, SimilarityClient
from .transport import HttpOracleTransport, OracleTransport

__all__ = [
    "BoundedPool",
    "ComparisonPair",
    "ComparisonResult",
    "SimilarityClient",
    "HttpOracleTransport",
    "OracleTransport",
]
