"""
Experiment statistics.
Per-variant aggregation of the event log and a two-proportion z-test
on engagement rate.
"""
import math
from typing import Iterable

from discovery.models.experiments import (
    ExperimentAction,
    ExperimentEvent,
    SignificanceResult,
    VariantMetrics,
)

Z_95 = 1.96
DEFAULT_SIGNIFICANCE_LEVEL = 0.05


def _rate(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return min(1.0, count / total)


def compute_variant_metrics(variant_name: str, events: Iterable[ExperimentEvent]) -> VariantMetrics:
    """
    Aggregate one variant's events.

    Rates are per shown discovery. Engagement counts likes, saves and shares,
    capped at the number of discoveries. Standard error and the 95% interval
    use the normal approximation to a binomial proportion.
    """
    users = set()
    counts = {action: 0 for action in ExperimentAction}
    scores = []
    action_times = []

    for event in events:
        if event.variant_name != variant_name:
            continue
        users.add(event.user_id)
        counts[event.action] += 1
        if event.discovery_score is not None:
            scores.append(event.discovery_score)
        if event.time_to_action is not None:
            action_times.append(event.time_to_action)

    shown = counts[ExperimentAction.SHOWN]
    engaged = min(
        shown,
        counts[ExperimentAction.LIKED] + counts[ExperimentAction.SAVED] + counts[ExperimentAction.SHARED],
    )
    engagement_rate = _rate(engaged, shown)

    standard_error = 0.0
    if shown > 0:
        standard_error = math.sqrt(engagement_rate * (1 - engagement_rate) / shown)

    return VariantMetrics(
        variant_name=variant_name,
        total_users=len(users),
        total_discoveries=shown,
        like_count=counts[ExperimentAction.LIKED],
        save_count=counts[ExperimentAction.SAVED],
        share_count=counts[ExperimentAction.SHARED],
        skip_count=counts[ExperimentAction.SKIPPED],
        engaged_count=engaged,
        like_rate=_rate(counts[ExperimentAction.LIKED], shown),
        save_rate=_rate(counts[ExperimentAction.SAVED], shown),
        skip_rate=_rate(counts[ExperimentAction.SKIPPED], shown),
        engagement_rate=engagement_rate,
        avg_discovery_score=sum(scores) / len(scores) if scores else None,
        avg_time_to_action=sum(action_times) / len(action_times) if action_times else None,
        standard_error=standard_error,
        confidence_interval_lower=max(0.0, engagement_rate - Z_95 * standard_error),
        confidence_interval_upper=min(1.0, engagement_rate + Z_95 * standard_error),
    )


def two_proportion_test(
    metrics_a: VariantMetrics,
    metrics_b: VariantMetrics,
    significance_level: float = DEFAULT_SIGNIFICANCE_LEVEL,
) -> SignificanceResult:
    """
    Pooled two-proportion z-test on engagement rate.

    The p-value is two-tailed. With no discoveries on either side, or a pooled
    rate of exactly 0 or 1, z is 0 and p is 1.
    """
    n_a = metrics_a.total_discoveries
    n_b = metrics_b.total_discoveries
    rate_a = metrics_a.engagement_rate
    rate_b = metrics_b.engagement_rate

    z_statistic = 0.0
    p_value = 1.0
    if n_a > 0 and n_b > 0:
        pooled = (metrics_a.engaged_count + metrics_b.engaged_count) / (n_a + n_b)
        standard_error = math.sqrt(pooled * (1 - pooled) * (1 / n_a + 1 / n_b))
        if standard_error > 0:
            z_statistic = (rate_a - rate_b) / standard_error
            p_value = math.erfc(abs(z_statistic) / math.sqrt(2))

    return SignificanceResult(
        variant_a=metrics_a.variant_name,
        variant_b=metrics_b.variant_name,
        variant_a_rate=rate_a,
        variant_b_rate=rate_b,
        difference=rate_a - rate_b,
        z_statistic=z_statistic,
        p_value=p_value,
        is_significant=p_value < significance_level,
    )
