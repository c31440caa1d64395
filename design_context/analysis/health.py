"""Design-system health scoring derived from the extracted tokens.

A category scores well when a few distinct values carry many usages:

    score = round(100 * (1 - (distinct - 1) / usages))   clamped to [0, 100]

A single value used everywhere scores 100; one distinct value per usage
drifts toward 0. The overall score is the mean over categories present.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..models import TOKEN_CATEGORY_ORDER, CategoryHealth, DesignToken, HealthReport

logger = logging.getLogger(__name__)

# (minimum score, grade), checked top-down
GRADE_TABLE = (
    (97, "A+"),
    (93, "A"),
    (90, "B+"),
    (85, "B"),
    (80, "C+"),
    (75, "C"),
    (65, "D"),
)


def grade_for(score: int) -> str:
    for threshold, grade in GRADE_TABLE:
        if score >= threshold:
            return grade
    return "F"


def category_score(distinct: int, usages: int) -> int:
    if usages <= 0 or distinct <= 0:
        return 0
    raw = 100 * (1 - (distinct - 1) / usages)
    return int(min(max(round(raw), 0), 100))


class DesignHealthAnalyzer:
    def analyze(self, tokens: Sequence[DesignToken]) -> HealthReport:
        categories: List[CategoryHealth] = []
        for category in TOKEN_CATEGORY_ORDER:
            members = [t for t in tokens if t.category == category]
            if not members:
                continue
            usages = sum(t.usage_count for t in members)
            score = category_score(len(members), usages)
            categories.append(CategoryHealth(
                category=category,
                distinct_values=len(members),
                usages=usages,
                score=score,
                grade=grade_for(score),
            ))

        overall: Optional[int] = None
        if categories:
            overall = round(sum(c.score for c in categories) / len(categories))

        logger.info("DesignHealthAnalyzer: overall=%s over %d categories", overall, len(categories))
        return HealthReport(
            overall_score=overall,
            grade=grade_for(overall) if overall is not None else None,
            categories=tuple(categories),
        )
