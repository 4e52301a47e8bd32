"""Feed watcher: hide new posts at once, decide them in debounced batches."""

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from bs4.element import Tag

from ..client import ComparisonPair, SimilarityClient
from ..config import Settings
from ..logging import get_logger
from ..page import visibility
from ..page.dom import MutationRecord, Observation, Page, posts_in
from ..page.extract import ExtractionRules, PostExtractor
from ..store import ENABLED_KEY, MUTED_IMAGES_KEY, KeyValueStore
from .scheduler import ScanScheduler, Timers

logger = get_logger(__name__)


class PostState(str, Enum):
    """Where a tracked post is between being hidden and being decided."""
    UNMARKED = "unmarked"
    MARKED = "marked"
    QUEUED = "queued"
    SCANNING = "scanning"
    DECIDED = "decided"


class Outcome(str, Enum):
    MUTED = "muted"
    SHOWN = "shown"


@dataclass(eq=False)
class PostRecord:
    """Tracking state for one post element; the element is not owned."""
    element_ref: "weakref.ReferenceType[Tag]"
    state: PostState = PostState.MARKED
    post_id: Optional[str] = None
    images: List[str] = field(default_factory=list)
    outcome: Optional[Outcome] = None

    @property
    def element(self) -> Optional[Tag]:
        return self.element_ref()


class FeedWatcher:
    """
    Watch a page for posts and mute the ones showing a muted image.

    Every post is hidden the moment it is seen and stays hidden until its
    scan cycle decides it. Scan cycles are debounced and never overlap.
    Disabling or rescanning bumps a generation counter; a cycle that
    finishes under an older generation throws its results away.
    """

    def __init__(
        self,
        page: Page,
        client: SimilarityClient,
        store: KeyValueStore,
        extractor: Optional[PostExtractor] = None,
        settings: Optional[Settings] = None,
        timers: Optional[Timers] = None,
    ):
        self.page = page
        self.settings = settings or Settings()
        self._client = client
        self._store = store
        self._extractor = extractor or PostExtractor(
            ExtractionRules.with_glyph_markers(self.settings.glyph_markers)
        )
        self.reference_images: List[str] = []
        self.enabled = False
        self._records: Dict[int, PostRecord] = {}
        self._pending: Dict[int, PostRecord] = {}
        self._observation: Optional[Observation] = None
        self._generation = 0
        self.scheduler = ScanScheduler(
            self._scan_cycle,
            lambda: bool(self._pending),
            timers=timers,
            delay=self.settings.debounce_seconds,
        )

    @property
    def observing(self) -> bool:
        return self._observation is not None and self._observation.connected

    async def start(self) -> None:
        """Load persisted state and begin watching if muting is enabled."""
        enabled = await self._store.get(ENABLED_KEY)
        self.enabled = enabled is not False

        muted = await self._store.get(MUTED_IMAGES_KEY)
        if muted:
            self.reference_images = list(muted)
            logger.info(f"Loaded {len(self.reference_images)} muted images")

        if self.enabled:
            self._attach()

    async def wait_idle(self) -> None:
        await self.scheduler.wait_idle()

    async def update_reference_images(self, urls: Sequence[str]) -> None:
        """Replace the muted set, persist it and re-decide every post."""
        self.reference_images = list(urls)
        await self._store.set(MUTED_IMAGES_KEY, self.reference_images)
        logger.info(f"Updated muted images: {self.reference_images}")
        self.rescan()

    async def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        await self._store.set(ENABLED_KEY, enabled)
        if enabled:
            self._attach()
        else:
            self._detach()

    def rescan(self) -> None:
        """
        Forget every per-post decision and scan the whole page again.

        Comparison scores stay cached, so posts that were already compared
        are decided without new oracle requests.
        """
        self._reset()
        if not self.enabled:
            return
        for element in self.page.find_posts(self.settings.post_tag):
            visibility.clear_marks(element)
        logger.info(f"Rescanning with {len(self.reference_images)} muted images")
        self._mark_all()

    def state_of(self, element: Tag) -> PostState:
        record = self._records.get(id(element))
        if record is None or record.element is not element:
            return PostState.UNMARKED
        return record.state

    def decisions(self) -> Dict[str, Outcome]:
        """Outcome per post id for every decided post."""
        return {
            record.post_id: record.outcome
            for record in self._records.values()
            if record.state is PostState.DECIDED and record.post_id and record.outcome
        }

    def _attach(self) -> None:
        if self.observing:
            return
        self._observation = self.page.observe(self._on_mutations)
        self._mark_all()

    def _detach(self) -> None:
        if self._observation is not None:
            self._observation.disconnect()
            self._observation = None
        self._reset()
        for element in self.page.find_posts(self.settings.post_tag):
            if visibility.is_marked(element):
                visibility.clear_marks(element)

    def _reset(self) -> None:
        self._generation += 1
        self.scheduler.cancel()
        self._pending.clear()
        self._records.clear()

    def _track(self, element: Tag) -> None:
        if visibility.is_marked(element):
            return
        # Hide before anything else happens to the post.
        visibility.mark(element)
        record = PostRecord(element_ref=weakref.ref(element))
        self._records[id(element)] = record
        record.state = PostState.QUEUED
        self._pending[id(element)] = record

    def _mark_all(self) -> None:
        for element in self.page.find_posts(self.settings.post_tag):
            self._track(element)
        if self._pending:
            self.scheduler.request()

    def _on_mutations(self, records: Sequence[MutationRecord]) -> None:
        for record in records:
            for node in record.added:
                for element in posts_in(node, self.settings.post_tag):
                    self._track(element)
        if self._pending:
            self.scheduler.request()

    async def _scan_cycle(self) -> None:
        generation = self._generation
        batch = list(self._pending.values())
        self._pending.clear()
        self._prune()
        if not batch:
            return

        logger.info(f"Found {len(batch)} potential posts to scan")
        references = list(self.reference_images)
        threshold = self.settings.similarity_threshold

        groups: Dict[str, List[PostRecord]] = {}
        images_by_post: Dict[str, List[str]] = {}
        unidentified: List[PostRecord] = []

        for record in batch:
            element = record.element
            if element is None or not self.page.contains(element):
                self._forget(record)
                continue
            record.state = PostState.SCANNING
            try:
                post_id = self._extractor.identify(element)
                images = self._extractor.extract_images(element) if post_id else []
            except Exception:
                logger.exception("Could not extract post, showing it")
                unidentified.append(record)
                continue
            if post_id is None:
                unidentified.append(record)
                continue
            record.post_id = post_id
            record.images = images
            logger.debug(f"Found {len(record.images)} images in post: {post_id}")
            groups.setdefault(post_id, []).append(record)
            # Same author and timestamp means the same post; latest wins.
            images_by_post[post_id] = record.images

        pairs = list(dict.fromkeys(
            ComparisonPair(image, reference)
            for images in images_by_post.values()
            for image in images
            for reference in references
        ))

        try:
            results = await self._client.resolve_batch(pairs)
        except Exception:
            logger.exception("Comparison batch failed, showing every post in this cycle")
            results = []

        if generation != self._generation:
            logger.debug("Discarding results of an abandoned scan")
            return

        scores = {(result.candidate, result.reference): result.similarity for result in results}

        muted_count = 0
        for post_id, records in groups.items():
            muted = any(
                scores.get((image, reference), 0.0) >= threshold
                for image in images_by_post[post_id]
                for reference in references
            )
            if muted:
                muted_count += 1
                logger.info(f"Muted post {post_id} due to matching image")
            outcome = Outcome.MUTED if muted else Outcome.SHOWN
            for record in records:
                self._decide(record, outcome)

        for record in unidentified:
            self._decide(record, Outcome.SHOWN)

        logger.info(f"Scan complete: scanned {len(batch)} posts, muted {muted_count} posts")

    def _decide(self, record: PostRecord, outcome: Outcome) -> None:
        record.state = PostState.DECIDED
        record.outcome = outcome
        element = record.element
        if element is None or not self.page.contains(element):
            self._forget(record)
            return
        visibility.apply_decision(element, outcome is Outcome.MUTED)

    def _prune(self) -> None:
        """Drop records whose element was collected or taken off the page."""
        for key, record in list(self._records.items()):
            element = record.element
            if element is None or not self.page.contains(element):
                del self._records[key]

    def _forget(self, record: PostRecord) -> None:
        for key, tracked in list(self._records.items()):
            if tracked is record:
                del self._records[key]
                break
