from __future__ import annotations

from narramorph.modules.analysis.focus import nodes_with_attractor
from narramorph.modules.analysis.models import AttractorEngagement
from narramorph.modules.reader.models import NodeState, NodeVisit, ReaderPath

SHARE_WEIGHT = 0.6
RECENCY_WEIGHT = 20.0
CONSISTENCY_WEIGHT = 20.0
MIN_TREND_SAMPLES = 3


def _half_density(visits: list[NodeVisit]) -> float:
    span = visits[-1].index - visits[0].index
    return len(visits) / max(1, span)


def engagement_trend(visits: list[NodeVisit]) -> str:
    if len(visits) < MIN_TREND_SAMPLES:
        return "stable"
    midpoint = len(visits) // 2
    first_density = _half_density(visits[:midpoint])
    second_density = _half_density(visits[midpoint:])
    if second_density > first_density * 1.2:
        return "rising"
    if second_density < first_density * 0.8:
        return "falling"
    return "stable"


def calculate_attractor_engagement(path: ReaderPath, nodes: dict[str, NodeState]) -> list[AttractorEngagement]:
    """Score each engaged attractor tag on a 0-100 scale.

    The score blends the tag's share of all engagement events with how recently
    and how regularly the reader engaged it, measured in visit indices.
    """
    counts = {tag: int(count) for tag, count in path.attractors_engaged.items() if int(count) > 0}
    total_all = sum(counts.values())
    if total_all <= 0:
        return []

    visits = path.detailed_visits
    most_recent = max((visit.index for visit in visits), default=0)

    results: list[AttractorEngagement] = []
    for tag, total in counts.items():
        share_pct = total / total_all * 100
        engaged = sorted(
            (visit for visit in visits if tag in visit.engaged_attractors),
            key=lambda visit: visit.index,
        )
        first_index: int | None = None
        last_index: int | None = None
        recency = 0.0
        consistency = 0.5
        if engaged:
            first_index = engaged[0].index
            last_index = engaged[-1].index
            span = most_recent - first_index
            recency = 1.0 if span <= 0 else max(0.0, 1.0 - (most_recent - last_index) / span)
            diffs = [later.index - earlier.index for earlier, later in zip(engaged, engaged[1:])]
            if diffs:
                consistency = 1.0 if span <= 0 else max(0.0, 1.0 - (max(diffs) - min(diffs)) / span)

        score = min(100.0, SHARE_WEIGHT * share_pct + RECENCY_WEIGHT * recency + CONSISTENCY_WEIGHT * consistency)
        results.append(
            AttractorEngagement(
                attractor=tag,
                engagement_score=round(score, 6),
                total_engagements=total,
                first_engagement=first_index,
                last_engagement=last_index,
                related_nodes=nodes_with_attractor(nodes, tag),
                trend=engagement_trend(engaged),
            )
        )
    return sorted(results, key=lambda item: item.engagement_score, reverse=True)


def engagement_by_attractor(engagements: list[AttractorEngagement]) -> dict[str, AttractorEngagement]:
    return {item.attractor: item for item in engagements}
