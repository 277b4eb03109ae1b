import pytest

from degreeplan.core.config import settings
from degreeplan.services.grading import DEFAULT_POLICY, GradingPolicy, points_for, policy_from_settings


@pytest.mark.parametrize(
    "grade, points",
    [("A", 4.0), ("B", 3.0), ("C", 2.0), ("D", 1.0), ("F", 0.0), ("W", 0.0), (None, 0.0), ("", 0.0)],
)
def test_default_scale_points(grade, points):
    assert points_for(grade) == points


def test_failing_grade_counts_but_withdrawal_does_not():
    # F earns nothing but still weighs on the GPA; W and unset are left out
    assert DEFAULT_POLICY.is_countable("F")
    assert not DEFAULT_POLICY.is_countable("W")
    assert not DEFAULT_POLICY.is_countable(None)
    assert not DEFAULT_POLICY.is_countable("")


def test_grades_are_matched_case_insensitively():
    assert points_for(" a ") == 4.0
    assert DEFAULT_POLICY.is_countable("b")


def test_custom_policy_with_plus_minus_scale():
    policy = GradingPolicy(scale={"A": 4.0, "A-": 3.7, "B+": 3.3, "P": 0.0}, countable=frozenset({"A", "A-", "B+"}))

    assert policy.points_for("A-") == 3.7
    assert policy.is_countable("B+")
    # Pass/fail is on the scale but excluded from the GPA
    assert not policy.is_countable("P")
    assert not policy.is_countable("C")
    assert policy.points_for("C") == 0.0


def test_policy_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "grade_scale", None)
    assert policy_from_settings() is DEFAULT_POLICY

    monkeypatch.setattr(settings, "grade_scale", {"a": 4.0, "a-": 3.7})
    policy = policy_from_settings()
    assert policy.points_for("A-") == 3.7
    assert not policy.is_countable("B")


def test_countable_grades_from_settings(monkeypatch):
    monkeypatch.setattr(settings, "grade_scale", {"A": 4.0, "A-": 3.7, "P": 0.0})
    monkeypatch.setattr(settings, "gpa_countable_grades", ["a", "A-"])
    policy = policy_from_settings()

    assert policy.is_countable("A-")
    assert not policy.is_countable("P")
    assert policy.accepts("p")
    assert policy.accepts("W")
    assert policy.accepts(None)
    assert not policy.accepts("B")
