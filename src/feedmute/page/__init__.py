"""Page model, post extraction and the visibility side effect."""

from .dom import MutationRecord, Observation, Page, posts_in
from .extract import ExtractionRules, PostExtractor, glyph_filter, is_http_url

__all__ = [
    "MutationRecord",
    "Observation",
    "Page",
    "posts_in",
    "ExtractionRules",
    "PostExtractor",
    "glyph_filter",
    "is_http_url",
]
