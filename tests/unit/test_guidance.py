"""
Unit tests for responder guidance and hotline information.
"""

import pytest

from irtiqa.config import Settings
from irtiqa.safety.guidance import (
    hotlines,
    immediate_actions,
    primary_hotline,
    recommended_actions,
)
from irtiqa.safety.risk import RiskLevel


@pytest.fixture
def settings() -> Settings:
    return Settings(
        secret_key="x" * 40,
        crisis_hotline="119 ext 8",
        crisis_hotline_name="Layanan 119",
    )


class TestRecommendedActions:
    """Tests for recommended actions per risk tier."""

    @pytest.mark.parametrize(
        "level,priority",
        [
            (RiskLevel.CRITICAL, "immediate"),
            (RiskLevel.HIGH, "urgent"),
            (RiskLevel.MEDIUM, "normal"),
            (RiskLevel.LOW, "routine"),
            ("critical", "immediate"),
        ],
    )
    def test_priority(self, level, priority):
        assert recommended_actions(level)["priority"] == priority

    def test_result_is_a_copy(self):
        actions = recommended_actions(RiskLevel.LOW)
        actions["actions"].append("changed")
        assert "changed" not in recommended_actions(RiskLevel.LOW)["actions"]


class TestHotlines:
    """Tests for hotline information."""

    def test_national_line_first(self, settings):
        lines = hotlines(settings)
        assert lines[0] == {
            "name": "Layanan 119",
            "number": "119 ext 8",
            "description": "24/7 mental health counselling and support",
            "type": "national",
        }
        assert all(line["type"] == "ngo" for line in lines[1:])

    def test_primary_hotline(self, settings):
        assert primary_hotline(settings) == {"name": "Layanan 119", "number": "119 ext 8"}

    def test_immediate_actions_use_configured_number(self, settings):
        steps = immediate_actions(settings)
        assert steps[0] == "Call the crisis hotline: 119 ext 8"
        assert len(steps) == 3
