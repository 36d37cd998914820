"""Aggregation of visitor ratings for the operator dashboard."""

from collections import defaultdict
from collections.abc import Sequence

from liaison.conversation.models import ChatRating
from liaison.sessions.models import OperatorRatingStats, RatingsSummary

RECENT_RATINGS = 50


def _average(scores: Sequence[int]) -> float:
    return round(sum(scores) / len(scores), 1) if scores else 0.0


def summarize_ratings(ratings: Sequence[ChatRating]) -> RatingsSummary:
    """Summarize ``ratings``, which must be ordered newest first.

    Ratings without an operator count towards the totals but not towards
    any per-operator entry.
    """
    distribution = dict.fromkeys(range(1, 6), 0)
    per_operator: dict[str, list[int]] = defaultdict(list)
    names: dict[str, str | None] = {}
    for rating in ratings:
        distribution[rating.rating] += 1
        if rating.operator_id:
            per_operator[rating.operator_id].append(rating.rating)
            names.setdefault(rating.operator_id, rating.operator_name)

    return RatingsSummary(
        total_ratings=len(ratings),
        average_rating=_average([r.rating for r in ratings]),
        distribution=distribution,
        by_operator=[
            OperatorRatingStats(
                operator_id=operator_id,
                operator_name=names[operator_id],
                total_ratings=len(scores),
                average_rating=_average(scores),
            )
            for operator_id, scores in sorted(per_operator.items())
        ],
        recent=list(ratings[:RECENT_RATINGS]),
    )
