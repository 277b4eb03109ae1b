from dataclasses import dataclass, field

from degreeplan.core.config import settings

DEFAULT_SCALE: dict[str, float] = {
    "A": 4.0,
    "B": 3.0,
    "C": 2.0,
    "D": 1.0,
    "F": 0.0,
}


@dataclass(frozen=True)
class GradingPolicy:
    """Per-institution grade scale.

    `scale` maps a grade symbol to quality points. `countable` lists the
    symbols that enter the GPA denominator; it defaults to every symbol in
    the scale. Symbols outside the scale (W, unset, unknown) earn 0 points
    and are never countable.
    """

    scale: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_SCALE))
    countable: frozenset[str] | None = None
    # Recorded on a course but never on the scale
    non_scale_symbols: frozenset[str] = frozenset({"W"})

    def _normalize(self, grade: str | None) -> str | None:
        if not grade:
            return None
        return grade.strip().upper() or None

    def normalize(self, grade: str | None) -> str | None:
        return self._normalize(grade)

    def accepts(self, grade: str | None) -> bool:
        normalized = self._normalize(grade)
        return normalized is None or normalized in self.scale or normalized in self.non_scale_symbols

    def points_for(self, grade: str | None) -> float:
        normalized = self._normalize(grade)
        if normalized is None:
            return 0.0
        return float(self.scale.get(normalized, 0.0))

    def is_countable(self, grade: str | None) -> bool:
        normalized = self._normalize(grade)
        if normalized is None or normalized not in self.scale:
            return False
        if self.countable is None:
            return True
        return normalized in self.countable


DEFAULT_POLICY = GradingPolicy()


def policy_from_settings() -> GradingPolicy:
    if not settings.grade_scale and not settings.gpa_countable_grades:
        return DEFAULT_POLICY
    scale = DEFAULT_SCALE
    if settings.grade_scale:
        scale = {symbol.strip().upper(): float(points) for symbol, points in settings.grade_scale.items()}
    countable = None
    if settings.gpa_countable_grades is not None:
        countable = frozenset(symbol.strip().upper() for symbol in settings.gpa_countable_grades)
    return GradingPolicy(scale=dict(scale), countable=countable)


def points_for(grade: str | None, policy: GradingPolicy = DEFAULT_POLICY) -> float:
    return policy.points_for(grade)
