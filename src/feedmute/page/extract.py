"""Post identity and candidate image extraction."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from bs4.element import Tag

UrlPredicate = Callable[[str], bool]


def is_http_url(url: str) -> bool:
    return bool(url) and url.startswith(("http://", "https://"))


def glyph_filter(markers: Sequence[str] = ("emoji",)) -> UrlPredicate:
    """Predicate rejecting URLs that contain any decorative-glyph path marker."""

    def keep(url: str) -> bool:
        return not any(marker in url for marker in markers)

    return keep


def _default_filters() -> List[UrlPredicate]:
    return [is_http_url, glyph_filter()]


@dataclass
class ExtractionRules:
    """Where identity and images live inside a rendered post."""
    time_selector: str = "time"
    author_selector: str = '[data-testid="User-Name"]'
    # Only timestamps that sit inside a post permalink identify a post;
    # timestamps of quoted content or replies link elsewhere.
    permalink_pattern: Optional[str] = r"status/(\d+)"
    url_filters: List[UrlPredicate] = field(default_factory=_default_filters)

    @classmethod
    def with_glyph_markers(cls, markers: Sequence[str]) -> "ExtractionRules":
        return cls(url_filters=[is_http_url, glyph_filter(markers)])


class PostExtractor:
    """Derive ``(post_id, image_urls)`` from a post element."""

    def __init__(self, rules: Optional[ExtractionRules] = None):
        self.rules = rules or ExtractionRules()
        self._permalink = (
            re.compile(self.rules.permalink_pattern) if self.rules.permalink_pattern else None
        )

    def identify(self, post: Tag) -> Optional[str]:
        """
        Stable identity from author handle and publication time.

        Args:
            post: Post element

        Returns:
            ``"{author}-{datetime}"`` or None when either part is missing
        """
        time_el = post.select_one(self.rules.time_selector)
        if time_el is None or not time_el.get("datetime"):
            return None

        if self._permalink is not None:
            link = time_el.find_parent("a")
            if link is None or not self._permalink.search(link.get("href", "")):
                return None

        author_el = post.select_one(self.rules.author_selector)
        if author_el is None:
            return None
        author = author_el.get_text(strip=True)
        if not author:
            return None

        return f"{author}-{time_el['datetime']}"

    def extract_images(self, post: Tag) -> List[str]:
        """Image URLs under the post in document order, duplicates kept."""
        urls: List[str] = []
        for img in post.find_all("img"):
            src = img.get("src") or ""
            if all(keep(src) for keep in self.rules.url_filters):
                urls.append(src)
        return urls
