"""Similarity oracle: hash-based image comparison and its HTTP surface."""

from .service import BatchPair, BatchResult, HttpImageFetcher, SimilarityOracle

__all__ = [
    "BatchPair",
    "BatchResult",
    "HttpImageFetcher",
    "SimilarityOracle",
]
