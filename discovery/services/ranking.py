"""
Ranking orchestrator.
Retrieves a diverse candidate pool, scores it with the configured strategy,
selects the next discovery and records telemetry.
"""
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from discovery.core.cache import TTLCache
from discovery.core.exceptions import (
    NoCandidatesAvailableError,
    NotFoundError,
    StoreUnavailableError,
)
from discovery.core.telemetry import DISCOVERIES_SERVED, NO_CANDIDATES, get_tracer
from discovery.models.experiments import (
    ExplorationScoringConfig,
    FreshnessBoostScoringConfig,
    ScoringConfig,
    StandardScoringConfig,
)
from discovery.models.interfaces import ContentStore, RandomSource
from discovery.models.schemas import (
    ContentFilter,
    ContentItem,
    ContentMetrics,
    ContentOrder,
    DiscoveryEvent,
    DiscoveryResult,
    ScoredCandidate,
    SimilarItem,
    UserContext,
    utcnow,
)
from discovery.services import scoring
from discovery.services.candidates import CandidateRetriever
from discovery.services.events import DiscoveryEventRecorder
from discovery.services.similarity import (
    SimilarityContext,
    multi_factor_similarity,
    top_k_similar,
)

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

GLOBAL_ENGAGEMENT_KEY = "global_engagement_average"
DEFAULT_DOMAIN_REPUTATION = 0.5


# =============================================================================
# Scoring Strategy (Strategy Pattern)
# =============================================================================


class ScoringStrategy(ABC):
    """Abstract base class for scoring strategies."""

    def __init__(self, freshness_half_life_days: float = scoring.DEFAULT_HALF_LIFE_DAYS) -> None:
        self._half_life_days = freshness_half_life_days

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy identifier recorded with each discovery."""
        pass

    def effective_context(self, context: UserContext) -> UserContext:
        """Context the strategy actually scores with."""
        return context

    def score(
        self,
        item: ContentItem,
        metrics: Optional[ContentMetrics],
        context: UserContext,
        global_avg_engagement: float,
        now: datetime,
        rng: RandomSource,
    ) -> ScoredCandidate:
        """
        Score one candidate for a user.

        Returns:
            ScoredCandidate with every component kept for debugging
        """
        context = self.effective_context(context)
        age = scoring.age_days(item.created_at, now)
        fresh = scoring.freshness(age, self._half_life_days)

        similarity = scoring.similarity_to_user(context.preferred_topics, item.weighted_topics())

        history = context.interaction_history
        if history is not None and not history.is_empty:
            personalization = scoring.personalization_score(
                item.topics, item.domain, history, DEFAULT_DOMAIN_REPUTATION
            )
        else:
            personalization = similarity

        if metrics is not None:
            popularity = scoring.popularity_score(metrics, age, global_avg_engagement)
        else:
            popularity = item.popularity_score

        adjusted = scoring.exploration_boost(context.wildness, personalization, popularity, rng)

        final = scoring.combined_score(
            item.base_score,
            item.quality_score,
            fresh,
            popularity,
            adjusted,
            context,
            rng,
        )

        return ScoredCandidate(
            item=item,
            age_days=age,
            freshness=fresh,
            similarity=adjusted,
            personalization=personalization,
            popularity=popularity,
            final_score=final,
        )


class StandardScoring(ScoringStrategy):
    """Default ranking."""

    @property
    def name(self) -> str:
        return "standard"


class FreshnessBoostScoring(ScoringStrategy):
    """Shorter freshness half-life so recent items dominate."""

    def __init__(self, freshness_half_life_days: float = 7.0) -> None:
        super().__init__(freshness_half_life_days)

    @property
    def name(self) -> str:
        return "freshness_boost"


class ExplorationScoring(ScoringStrategy):
    """Scores every user as if their wildness were at least ``wildness_floor``."""

    def __init__(
        self,
        wildness_floor: int = 50,
        freshness_half_life_days: float = scoring.DEFAULT_HALF_LIFE_DAYS,
    ) -> None:
        super().__init__(freshness_half_life_days)
        self._wildness_floor = wildness_floor

    @property
    def name(self) -> str:
        return "exploration"

    def effective_context(self, context: UserContext) -> UserContext:
        if context.wildness >= self._wildness_floor:
            return context
        return context.model_copy(update={"wildness": self._wildness_floor})


def build_scoring_strategy(
    config: Optional[ScoringConfig] = None,
    default_half_life_days: float = scoring.DEFAULT_HALF_LIFE_DAYS,
) -> ScoringStrategy:
    """
    Map a typed variant configuration to its strategy.

    Without a configuration the standard strategy uses ``default_half_life_days``.
    """
    if config is None:
        return StandardScoring(default_half_life_days)
    if isinstance(config, StandardScoringConfig):
        return StandardScoring(config.freshness_half_life_days)
    if isinstance(config, FreshnessBoostScoringConfig):
        return FreshnessBoostScoring(config.freshness_half_life_days)
    if isinstance(config, ExplorationScoringConfig):
        return ExplorationScoring(config.wildness_floor, config.freshness_half_life_days)
    raise ValueError(f"Unknown scoring configuration: {config!r}")


# =============================================================================
# Ranking Orchestrator
# =============================================================================


class RankingOrchestrator:
    """
    Entry point for serving the next discovery.

    Responsibilities:
    - Retrieve a diverse candidate pool
    - Score candidates with the variant's strategy
    - Pick the best candidate and explain it
    - Record telemetry without ever failing the call
    """

    def __init__(
        self,
        retriever: CandidateRetriever,
        content_store: ContentStore,
        event_recorder: DiscoveryEventRecorder,
        stats_cache: Optional[TTLCache[float]] = None,
        rng: Optional[RandomSource] = None,
        algorithm_version: str = "v2.0",
        default_global_engagement: float = scoring.DEFAULT_GLOBAL_ENGAGEMENT,
        global_stats_ttl_sec: float = 300,
        freshness_half_life_days: float = scoring.DEFAULT_HALF_LIFE_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize ranking orchestrator with dependencies.

        Args:
            retriever: Candidate pool source
            content_store: Store for metrics and global statistics
            event_recorder: Best-effort telemetry writer
            stats_cache: Cache for the global engagement average
            rng: Random source for exploration terms
            algorithm_version: Identifier recorded with each discovery
            default_global_engagement: Used when global statistics are unavailable
            global_stats_ttl_sec: Cache lifetime of the global average
            freshness_half_life_days: Half-life of the default ranking
            clock: Current UTC time
        """
        self._retriever = retriever
        self._content_store = content_store
        self._event_recorder = event_recorder
        self._stats_cache = stats_cache or TTLCache[float](default_ttl_seconds=global_stats_ttl_sec)
        self._rng = rng or random.Random()
        self._algorithm_version = algorithm_version
        self._default_global_engagement = default_global_engagement
        self._global_stats_ttl_sec = global_stats_ttl_sec
        self._freshness_half_life_days = freshness_half_life_days
        self._clock = clock

    async def next(
        self,
        user_id: str,
        context: UserContext,
        exclude_ids: Iterable[str],
        scoring_config: Optional[ScoringConfig] = None,
        variant: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> DiscoveryResult:
        """
        Select the next discovery for a user.

        Args:
            user_id: User identifier
            context: Per-request personalization inputs
            exclude_ids: Content already seen
            scoring_config: Experiment variant configuration, default ranking if None
            variant: Experiment variant name, recorded in the algorithm identifier
            session_id: Optional client session

        Returns:
            DiscoveryResult for the highest-scoring candidate

        Raises:
            NoCandidatesAvailableError: If the candidate pool is empty
        """
        exclude_ids = set(exclude_ids)
        strategy = build_scoring_strategy(scoring_config, self._freshness_half_life_days)
        algorithm = self._algorithm_id(variant)

        with tracer.start_as_current_span("discovery.next") as span:
            span.set_attribute("discovery.algorithm", algorithm)
            span.set_attribute("discovery.wildness", context.wildness)

            candidates = await self._retriever.get_candidates(
                exclude_ids=exclude_ids,
                user_topics=context.preferred_topics,
                blocked_domains=context.blocked_domains,
            )
            span.set_attribute("discovery.candidate_count", len(candidates))

            if not candidates:
                NO_CANDIDATES.inc()
                logger.info(
                    f"No candidates available (excluded={len(exclude_ids)})",
                    extra={"user_id": user_id},
                )
                raise NoCandidatesAvailableError(user_id, excluded=len(exclude_ids))

            metrics = await self._fetch_metrics([c.id for c in candidates])
            global_avg = await self._global_engagement_average()
            now = self._clock()

            scored = self.score_candidates(candidates, metrics, context, strategy, global_avg, now)
            best = scored[0]
            best.reason = scoring.generate_reason(
                best.item, context.preferred_topics, best.final_score, context, now
            )

            await self._event_recorder.record(
                DiscoveryEvent(
                    user_id=user_id,
                    content_id=best.item.id,
                    session_id=session_id,
                    algorithm=algorithm,
                    wildness=context.wildness,
                    base_score=best.item.base_score,
                    final_score=best.final_score,
                    rank=1,
                )
            )

        DISCOVERIES_SERVED.labels(algorithm=algorithm).inc()
        logger.info(
            f"Discovery selected: score={best.final_score:.3f} "
            f"candidates={len(candidates)} strategy={strategy.name}",
            extra={"user_id": user_id, "content_id": best.item.id, "variant": variant},
        )

        return DiscoveryResult(
            item=best.item,
            score=best.final_score,
            reason=best.reason,
            rank=1,
            algorithm=algorithm,
            candidate_count=len(candidates),
        )

    def score_candidates(
        self,
        candidates: List[ContentItem],
        metrics: Dict[str, ContentMetrics],
        context: UserContext,
        strategy: ScoringStrategy,
        global_avg: float,
        now: datetime,
    ) -> List[ScoredCandidate]:
        """Score and sort candidates: highest score first, newest first on ties."""
        scored = [
            strategy.score(item, metrics.get(item.id), context, global_avg, now, self._rng)
            for item in candidates
        ]
        scored.sort(key=lambda c: (c.final_score, c.item.created_at), reverse=True)
        return scored

    async def similar_to(self, content_id: str, limit: int = 10) -> List[SimilarItem]:
        """
        Items most similar to ``content_id`` among active content.

        Raises:
            NotFoundError: If the reference item does not exist
        """
        reference = await self._content_store.get_content(content_id)
        if reference is None:
            raise NotFoundError("Content", content_id)

        pool = await self._content_store.query_active_content(
            content_filter=ContentFilter(exclude_ids={content_id}),
            order_by=ContentOrder.CREATED_AT,
            limit=self._retriever.pool_size,
        )
        context = SimilarityContext(corpus=[reference.topics] + [item.topics for item in pool])

        items = {item.id: item for item in pool}
        results = {item.id: multi_factor_similarity(reference, item, context) for item in pool}
        row = {content_id: {item_id: r.overall_score for item_id, r in results.items()}}

        return [
            SimilarItem(item=items[item_id], similarity=score, components=results[item_id].components)
            for item_id, score in top_k_similar(content_id, limit, row)
        ]

    async def _fetch_metrics(self, content_ids: List[str]) -> Dict[str, ContentMetrics]:
        try:
            return await self._content_store.get_metrics(content_ids)
        except StoreUnavailableError as e:
            logger.warning(f"Metrics unavailable, using stored popularity: {e.message}")
            return {}

    async def _global_engagement_average(self) -> float:
        try:
            return await self._stats_cache.get_or_load(
                GLOBAL_ENGAGEMENT_KEY,
                self._content_store.get_global_engagement_average,
                self._global_stats_ttl_sec,
            )
        except StoreUnavailableError as e:
            logger.warning(f"Global engagement unavailable, using default: {e.message}")
            return self._default_global_engagement

    def _algorithm_id(self, variant: Optional[str]) -> str:
        if variant:
            return f"{self._algorithm_version}/{variant}"
        return self._algorithm_version
