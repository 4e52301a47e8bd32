"""Exception hierarchy shared across the muting pipeline."""


class FeedmuteError(Exception):
    """Base class for all feedmute errors."""


class HashComputationError(FeedmuteError):
    """Raised when image bytes cannot be decoded into a perceptual hash."""


class ImageFetchError(FeedmuteError):
    """Raised when an image URL cannot be downloaded."""


class OracleRequestError(FeedmuteError):
    """Raised when a request to the similarity oracle fails."""


class UnknownActionError(FeedmuteError):
    """Raised when a trigger message names an action nobody handles."""


class DeliveryError(FeedmuteError):
    """Raised when a trigger message could not reach the page context."""
