"""Perceptual hashing engine."""

from .hash import compute_hash, DEFAULT_HASH_SIZE, DEFAULT_RESIZE
from .distance import normalized_distance, similarity

__all__ = [
    "compute_hash",
    "DEFAULT_HASH_SIZE",
    "DEFAULT_RESIZE",
    "normalized_distance",
    "similarity",
]
