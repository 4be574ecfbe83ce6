"""
Tests for submission risk scoring.

Tests:
- Keyword matching
- Answer score tiers and urgency
- Combined risk level and escalation decision
- Properties that hold for every input
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from irtiqa.safety.risk import (
    RiskAssessment,
    RiskConfig,
    RiskLevel,
    Urgency,
    answer_level,
    answer_urgency,
    assess,
    keyword_level,
    match_keywords,
    sum_answer_scores,
)

KEYWORDS = ("bunuh diri", "ingin mati", "suicide", "kill myself", "want to die")
CONFIG = RiskConfig(keywords=KEYWORDS)


def scores(*values):
    return [{"answer": "ya", "risk_score": v} for v in values]


class TestKeywordMatching:
    """Tests for crisis keyword detection."""

    def test_case_insensitive(self):
        assert match_keywords("Saya INGIN MATI saja", KEYWORDS) == ["ingin mati"]

    def test_substring_match(self):
        """Keywords match inside longer words and phrases."""
        assert match_keywords("thoughts of suicidewatch", KEYWORDS) == ["suicide"]

    def test_configuration_order_without_duplicates(self):
        text = "want to die, bunuh diri, want to die again"
        assert match_keywords(text, KEYWORDS) == ["bunuh diri", "want to die"]

    def test_empty_text(self):
        assert match_keywords("", KEYWORDS) == []
        assert match_keywords(None, KEYWORDS) == []

    def test_blank_keywords_ignored(self):
        assert match_keywords("anything", ["", "   "]) == []


class TestAnswerScores:
    """Tests for structured answer scoring."""

    def test_sum(self):
        assert sum_answer_scores(scores(1, 2.5, 3)) == 6.5

    def test_non_numeric_scores_ignored(self):
        answers = scores(2) + [
            {"risk_score": "5"},
            {"risk_score": None},
            {"risk_score": True},
            {"answer": "no score"},
        ]
        assert sum_answer_scores(answers) == 2

    def test_objects_with_attribute(self):
        class Answer:
            risk_score = 4

        assert sum_answer_scores([Answer()]) == 4

    def test_no_answers(self):
        assert sum_answer_scores(None) == 0
        assert sum_answer_scores([]) == 0

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, RiskLevel.LOW),
            (2.9, RiskLevel.LOW),
            (3, RiskLevel.MEDIUM),
            (5, RiskLevel.HIGH),
            (7.5, RiskLevel.HIGH),
            (8, RiskLevel.CRITICAL),
            (20, RiskLevel.CRITICAL),
        ],
    )
    def test_answer_tiers(self, score, expected):
        assert answer_level(score, CONFIG) == expected

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, Urgency.NORMAL),
            (3.9, Urgency.NORMAL),
            (4, Urgency.URGENT),
            (6.9, Urgency.URGENT),
            (7, Urgency.EMERGENCY),
        ],
    )
    def test_urgency_tiers(self, score, expected):
        assert answer_urgency(score, CONFIG) == expected

    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, None),
            (1, RiskLevel.MEDIUM),
            (2, RiskLevel.HIGH),
            (3, RiskLevel.CRITICAL),
            (5, RiskLevel.CRITICAL),
        ],
    )
    def test_keyword_tiers(self, count, expected):
        assert keyword_level(count, CONFIG) == expected


class TestAssess:
    """Tests for the combined assessment."""

    def test_benign_submission(self):
        result = assess("Sulit tidur menjelang ujian", scores(1), CONFIG)
        assert result == RiskAssessment(
            risk_level=RiskLevel.LOW,
            urgency=Urgency.NORMAL,
            requires_escalation=False,
            flags=(),
            answer_score=1.0,
            keyword_level=None,
        )

    def test_single_keyword_escalates_at_medium(self):
        """Any keyword hit escalates, even when the tier is only medium."""
        result = assess("kadang saya ingin mati", None, CONFIG)
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.requires_escalation is True
        assert result.flags == ("ingin mati",)

    def test_keywords_and_answers_take_the_higher_tier(self):
        result = assess("I want to die", scores(5, 4), CONFIG)
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.urgency == Urgency.EMERGENCY

    def test_high_answer_score_escalates_without_keywords(self):
        result = assess("Masalah di rumah", scores(3, 2), CONFIG)
        assert result.risk_level == RiskLevel.HIGH
        assert result.requires_escalation is True
        assert result.flags == ()

    def test_medium_answer_score_does_not_escalate(self):
        result = assess("Masalah di rumah", scores(3), CONFIG)
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.requires_escalation is False

    def test_three_keywords_are_critical(self):
        result = assess("suicide, kill myself, bunuh diri", None, CONFIG)
        assert result.risk_level == RiskLevel.CRITICAL
        assert len(result.flags) == 3

    @pytest.mark.parametrize(
        "text,answers",
        [
            (42, None),
            (b"bunuh diri", None),
            (["bunuh diri"], None),
            ("Masalah di rumah", 7),
            ("Masalah di rumah", "risk_score"),
            ("Masalah di rumah", {"risk_score": 9}),
        ],
    )
    def test_malformed_input_is_no_signal(self, text, answers):
        result = assess(text, answers, CONFIG)
        assert result.risk_level == RiskLevel.LOW
        assert result.urgency == Urgency.NORMAL
        assert result.requires_escalation is False
        assert result.flags == ()

    def test_to_dict(self):
        data = assess("want to die", None, CONFIG).to_dict()
        assert data["risk_level"] == "medium"
        assert data["flags"] == ["want to die"]
        assert data["keyword_level"] == "medium"

    def test_config_from_settings(self, settings):
        config = RiskConfig.from_settings(settings)
        assert "bunuh diri" in config.keywords
        assert config.answer_critical == settings.answer_critical_threshold


class TestRiskProperties:
    """Invariants that hold for all submissions."""

    @given(
        text=st.text(max_size=200),
        values=st.lists(st.floats(min_value=0, max_value=50), max_size=8),
    )
    @settings(max_examples=100)
    def test_deterministic(self, text, values):
        assert assess(text, scores(*values), CONFIG) == assess(text, scores(*values), CONFIG)

    @given(
        text=st.text(max_size=200),
        values=st.lists(st.floats(min_value=0, max_value=50), max_size=8),
    )
    @settings(max_examples=100)
    def test_level_is_max_of_signals(self, text, values):
        result = assess(text, scores(*values), CONFIG)
        expected = RiskLevel.highest(
            answer_level(result.answer_score, CONFIG),
            keyword_level(len(result.flags), CONFIG),
        )
        assert result.risk_level == expected

    @given(
        text=st.text(max_size=200),
        values=st.lists(st.floats(min_value=0, max_value=50), max_size=8),
    )
    @settings(max_examples=100)
    def test_flags_force_escalation(self, text, values):
        result = assess(text, scores(*values), CONFIG)
        if result.flags:
            assert result.requires_escalation

    @given(
        base=st.lists(st.floats(min_value=0, max_value=20), max_size=5),
        extra=st.floats(min_value=0, max_value=20),
    )
    @settings(max_examples=100)
    def test_more_score_never_lowers_risk(self, base, extra):
        low = assess("", scores(*base), CONFIG)
        high = assess("", scores(*base, extra), CONFIG)
        assert high.risk_level.rank >= low.risk_level.rank
        assert high.urgency.rank >= low.urgency.rank

    @given(prefix=st.text(max_size=50), keyword=st.sampled_from(KEYWORDS))
    @settings(max_examples=50)
    def test_appending_keyword_always_flags(self, prefix, keyword):
        result = assess(prefix + " " + keyword.upper(), None, CONFIG)
        assert keyword in result.flags
        assert result.risk_level.rank >= RiskLevel.MEDIUM.rank
