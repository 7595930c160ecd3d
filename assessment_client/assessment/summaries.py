"""
Chart series derived from goal results.

Produces the plain data a dashboard plots (score evolution, metric
contributions, metric history). Rendering is left to the caller.
"""

from typing import Any, List, Tuple

from assessment_client.assessment.models import GoalResult, MetricResult

Series = List[Tuple[str, Any]]


def metric_key(metric: MetricResult) -> str:
    """Short label of a metric: its acronym, else its name."""
    return metric.acronym or metric.name


def metric_label(metric: MetricResult) -> str:
    """Legend label, e.g. ``"LCP (ms)"``."""
    if metric.unit:
        return f"{metric_key(metric)} ({metric.unit})"
    return metric_key(metric)


def global_score_series(goal: GoalResult) -> Series:
    """Global score of every assessment as a percentage, oldest first."""
    return [(a.timestamp, a.global_score * 100) for a in goal.assessments]


def metric_contributions(goal: GoalResult) -> Series:
    """
    Average contribution of each metric across all assessments, as a percentage.

    Assessment details reference metrics by acronym or by name. A metric
    with no matching detail contributes 0. A goal without assessments has
    no contributions at all.
    """
    if not goal.assessments:
        return []

    contributions: Series = []
    for metric in goal.metrics:
        values = [
            detail.value
            for assessment in goal.assessments
            for detail in assessment.details
            if detail.metric and detail.metric in (metric.acronym, metric.name)
        ]
        average = sum(values) / len(values) if values else 0.0
        contributions.append((metric_key(metric), average * 100))
    return contributions


def metric_history_series(metric: MetricResult) -> Series:
    """Recorded values of one metric, oldest first."""
    return [(point.timestamp, point.value) for point in metric.history]


__all__ = [
    "Series",
    "metric_key",
    "metric_label",
    "global_score_series",
    "metric_contributions",
    "metric_history_series",
]
