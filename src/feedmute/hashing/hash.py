"""Perceptual hash computation for feed image matching."""

import io

from PIL import Image
import imagehash

from ..errors import HashComputationError
from ..logging import get_logger

logger = get_logger(__name__)

DEFAULT_HASH_SIZE = 16
DEFAULT_RESIZE = 256


def compute_hash(
    data: bytes,
    hash_size: int = DEFAULT_HASH_SIZE,
    resize_to: int = DEFAULT_RESIZE,
) -> imagehash.ImageHash:
    """
    Decode image bytes and compute an average hash.

    The image is stretched to a fixed square first so that the same picture
    served at different sizes or aspect ratios lands on the same grid.

    Args:
        data: Raw encoded image bytes
        hash_size: Side of the hash grid; the fingerprint has hash_size**2 bits
        resize_to: Side of the square the image is resized to before hashing

    Returns:
        Average hash of the resized image

    Raises:
        HashComputationError: If the bytes cannot be decoded as an image
    """
    if not data:
        raise HashComputationError("Cannot hash empty image data")

    try:
        with Image.open(io.BytesIO(data)) as img:
            # Convert to RGB so palette and alpha images hash consistently
            if img.mode != 'RGB':
                img = img.convert('RGB')

            resized = img.resize((resize_to, resize_to), Image.Resampling.LANCZOS)
            fingerprint = imagehash.average_hash(resized, hash_size=hash_size)

            logger.debug(f"Computed {hash_size * hash_size}-bit hash: {fingerprint}")
            return fingerprint

    except Exception as exc:
        raise HashComputationError(f"Failed to compute hash: {exc}") from exc
