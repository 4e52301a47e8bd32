"""In-process page model with structural-change notifications.

The feed is held as a BeautifulSoup tree. Anything that inserts content
goes through :meth:`Page.insert`, which notifies observers with the newly
attached subtrees the same way a browser mutation observer would.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

_PARSER = "lxml"


@dataclass(frozen=True)
class MutationRecord:
    """Subtrees attached to the page by one insertion."""
    added: Tuple[Tag, ...]


MutationCallback = Callable[[Sequence[MutationRecord]], None]


class Observation:
    """Handle for one registered observer."""

    def __init__(self, page: "Page", callback: MutationCallback) -> None:
        self._page = page
        self.callback = callback

    @property
    def connected(self) -> bool:
        return self in self._page._observers

    def disconnect(self) -> None:
        if self.connected:
            self._page._observers.remove(self)


class Page:
    """A rendered feed document."""

    def __init__(self, html: str = "") -> None:
        self.document = BeautifulSoup(html or "<html><body></body></html>", _PARSER)
        if self.document.body is None:
            root = self.document.html or self.document
            root.append(self.document.new_tag("body"))
        self._observers: List[Observation] = []

    @property
    def body(self) -> Tag:
        return self.document.body

    def observe(self, callback: MutationCallback) -> Observation:
        """Register a callback for every subsequent insertion."""
        observation = Observation(self, callback)
        self._observers.append(observation)
        return observation

    def insert(self, markup: str, parent: Optional[Tag] = None) -> List[Tag]:
        """
        Parse markup and append its top-level elements.

        Args:
            markup: HTML fragment
            parent: Element to append to; the body when omitted

        Returns:
            The inserted top-level elements
        """
        fragment = BeautifulSoup(markup, _PARSER)
        container = fragment.body if fragment.body is not None else fragment
        nodes = [child for child in list(container.children) if isinstance(child, Tag)]

        target = parent if parent is not None else self.body
        for node in nodes:
            target.append(node.extract())

        if nodes:
            self._notify(MutationRecord(tuple(nodes)))
        return nodes

    def remove(self, element: Tag) -> None:
        element.extract()

    def contains(self, element: Tag) -> bool:
        """Whether the element is still attached to this document."""
        if element.decomposed:
            return False
        return any(parent is self.document for parent in element.parents)

    def find_posts(self, tag: str = "article") -> List[Tag]:
        return self.document.find_all(tag)

    def _notify(self, record: MutationRecord) -> None:
        for observation in list(self._observers):
            observation.callback([record])


def posts_in(node: Tag, tag: str = "article") -> List[Tag]:
    """Post-shaped elements within an inserted subtree, the node included."""
    if node.name == tag:
        return [node]
    return node.find_all(tag)
