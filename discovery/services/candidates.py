"""
Candidate retrieval with a per-domain diversity cap.
"""
import logging
import time
from typing import Callable, Dict, Iterable, List

from discovery.core.exceptions import StoreUnavailableError
from discovery.core.telemetry import CANDIDATE_POOL_SIZE
from discovery.models.interfaces import ContentStore
from discovery.models.schemas import ContentFilter, ContentItem, ContentOrder
from discovery.services.scoring import matched_topics

logger = logging.getLogger(__name__)


class CandidateRetriever:
    """
    Pulls an over-fetched pool of active content and trims it to a diverse pool.

    The store-level ordering alternates between recency and quality on a
    coarse rotation so a fixed pool size samples different slices of a large
    corpus over time.
    """

    def __init__(
        self,
        store: ContentStore,
        pool_size: int = 500,
        diverse_pool_size: int = 300,
        max_per_domain: int = 20,
        max_exclude_ids: int = 200,
        rotation_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize candidate retriever.

        Args:
            store: Content store to query
            pool_size: Rows fetched from the store per call
            diverse_pool_size: Target size of the returned pool
            max_per_domain: Diversity cap per source domain
            max_exclude_ids: Largest exclusion set pushed down to the store
            rotation_seconds: Period of the recency/quality ordering rotation
            clock: Wall clock in epoch seconds
        """
        self._store = store
        self._pool_size = pool_size
        self._diverse_pool_size = diverse_pool_size
        self._max_per_domain = max_per_domain
        self._max_exclude_ids = max_exclude_ids
        self._rotation_seconds = rotation_seconds
        self._clock = clock

    @property
    def pool_size(self) -> int:
        return self._pool_size

    async def get_candidates(
        self,
        exclude_ids: Iterable[str],
        user_topics: Iterable[str],
        blocked_domains: Iterable[str] = (),
    ) -> List[ContentItem]:
        """
        Fetch a diverse candidate pool.

        Args:
            exclude_ids: Content the user has already seen
            user_topics: Preferred topics; matching items are admitted first
            blocked_domains: Domains never to return

        Returns:
            Up to ``diverse_pool_size`` items, empty if the store is unavailable
        """
        exclude_ids = set(exclude_ids)
        user_topics = set(user_topics)

        content_filter = ContentFilter(exclude_domains=set(blocked_domains))
        if len(exclude_ids) < self._max_exclude_ids:
            content_filter.exclude_ids = exclude_ids
        else:
            logger.warning(
                f"Exclusion set too large ({len(exclude_ids)} ids), "
                f"skipping exclusion filter for this call"
            )

        order_by = self.current_order()

        try:
            items = await self._store.query_active_content(
                content_filter=content_filter,
                order_by=order_by,
                limit=self._pool_size,
            )
        except StoreUnavailableError as e:
            logger.error(f"Candidate query failed: {e.message}")
            return []

        # Stable: items with equal match counts keep the store order
        ranked = sorted(
            items,
            key=lambda item: len(matched_topics(item.topics, user_topics)),
            reverse=True,
        )

        pool = self.apply_domain_cap(ranked)
        CANDIDATE_POOL_SIZE.observe(len(pool))

        logger.debug(
            f"Candidates: fetched={len(items)} diverse={len(pool)} "
            f"order_by={order_by.value}"
        )
        return pool

    def current_order(self) -> ContentOrder:
        """Recency on even rotation periods, quality on odd ones."""
        period = int(self._clock() // self._rotation_seconds)
        if period % 2 == 0:
            return ContentOrder.CREATED_AT
        return ContentOrder.QUALITY

    def apply_domain_cap(self, items: List[ContentItem]) -> List[ContentItem]:
        """Greedily admit items while each domain stays under the cap."""
        domain_counts: Dict[str, int] = {}
        pool: List[ContentItem] = []

        for item in items:
            if len(pool) >= self._diverse_pool_size:
                break
            count = domain_counts.get(item.domain, 0)
            if count >= self._max_per_domain:
                continue
            domain_counts[item.domain] = count + 1
            pool.append(item)

        return pool
