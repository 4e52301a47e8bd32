"""Distance metrics for perceptual hash comparison."""

from typing import Optional

import imagehash
import numpy as np


def normalized_distance(
    a: Optional[imagehash.ImageHash],
    b: Optional[imagehash.ImageHash],
) -> float:
    """
    Fraction of differing bits between two hashes.

    A missing hash or hashes of different lengths count as fully
    mismatched.

    Args:
        a: First hash, or None if it could not be computed
        b: Second hash, or None if it could not be computed

    Returns:
        Distance in [0, 1]
    """
    if a is None or b is None:
        return 1.0

    bits_a = np.asarray(a.hash, dtype=bool).flatten()
    bits_b = np.asarray(b.hash, dtype=bool).flatten()
    if bits_a.size == 0 or bits_a.size != bits_b.size:
        return 1.0

    return float(np.count_nonzero(bits_a != bits_b)) / bits_a.size


def similarity(
    a: Optional[imagehash.ImageHash],
    b: Optional[imagehash.ImageHash],
) -> float:
    """Similarity score, 1 minus the normalized Hamming distance."""
    return 1.0 - normalized_distance(a, b)
