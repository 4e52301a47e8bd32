"""Hide/show side effect, expressed as data attributes on post elements.

A marked post is hidden unless it has been processed and explicitly
decided not muted, so a post is never visible while undecided.
"""

from bs4.element import Tag

MARK_ATTR = "data-image-muter"
PROCESSED_ATTR = "data-processed"
MUTED_ATTR = "data-muted"


def mark(element: Tag) -> None:
    element[MARK_ATTR] = "true"


def is_marked(element: Tag) -> bool:
    return element.has_attr(MARK_ATTR)


def apply_decision(element: Tag, muted: bool) -> None:
    element[PROCESSED_ATTR] = "true"
    element[MUTED_ATTR] = "true" if muted else "false"


def clear_marks(element: Tag) -> None:
    for attr in (MARK_ATTR, PROCESSED_ATTR, MUTED_ATTR):
        element.attrs.pop(attr, None)


def is_visible(element: Tag) -> bool:
    if not is_marked(element):
        return True
    return element.get(PROCESSED_ATTR) == "true" and element.get(MUTED_ATTR) == "false"
