"""Tests for analysis/health.py."""

from __future__ import annotations

import pytest

from design_context.analysis.health import DesignHealthAnalyzer, category_score, grade_for
from design_context.extractors.style import StyleExtractor
from design_context.models import DesignToken, TokenCategory
from design_context.nodes import parse


def _make_token(category: TokenCategory, key: str, usage: int) -> DesignToken:
    refs = tuple(f"n{i}" for i in range(usage))
    return DesignToken(
        id=f"{category.value.lower()}:{key}",
        category=category,
        name=key,
        key=key,
        value=key,
        usage_count=usage,
        reference_node_ids=refs,
    )


class TestScoring:
    @pytest.mark.parametrize("distinct, usages, expected", [
        (1, 10, 100),
        (2, 2, 50),
        (5, 5, 20),
        (4, 14, 79),
        (0, 0, 0),
        (3, 0, 0),
    ])
    def test_category_score(self, distinct, usages, expected):
        assert category_score(distinct, usages) == expected

    @pytest.mark.parametrize("score, grade", [
        (100, "A+"), (97, "A+"), (93, "A"), (90, "B+"), (85, "B"),
        (80, "C+"), (75, "C"), (65, "D"), (64, "F"), (0, "F"),
    ])
    def test_grade_for(self, score, grade):
        assert grade_for(score) == grade


class TestAnalyzer:
    def test_no_tokens_gives_empty_report(self):
        report = DesignHealthAnalyzer().analyze([])
        assert report.overall_score is None
        assert report.grade is None
        assert report.categories == ()

    def test_categories_in_fixed_order(self):
        tokens = [
            _make_token(TokenCategory.BORDER, "radius|4", 2),
            _make_token(TokenCategory.COLOR, "#000000FF", 3),
            _make_token(TokenCategory.COLOR, "#FFFFFFFF", 1),
        ]
        report = DesignHealthAnalyzer().analyze(tokens)

        assert [c.category for c in report.categories] == [TokenCategory.COLOR, TokenCategory.BORDER]
        color = report.categories[0]
        assert (color.distinct_values, color.usages, color.score) == (2, 4, 75)
        assert report.overall_score == round((75 + 100) / 2)

    def test_screen_file_report(self, screen_file):
        tokens = StyleExtractor().extract(parse(screen_file).registry).tokens
        report = DesignHealthAnalyzer().analyze(tokens)

        scores = {c.category: c.score for c in report.categories}
        assert scores == {
            TokenCategory.COLOR: 79,
            TokenCategory.TYPOGRAPHY: 100,
            TokenCategory.BORDER: 67,
        }
        assert report.overall_score == 82
        assert report.grade == "C+"
