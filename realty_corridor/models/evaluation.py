"""Competitor evaluations, corridors and saved analysis sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class EvaluationKind(StrEnum):
    BETTER = "better"
    WORSE = "worse"
    EQUAL = "equal"
    FAKE = "fake"
    NOT_COMPETITOR = "not-competitor"
    NOT_SOLD = "not-sold"


EXCLUDED_EVALUATIONS = frozenset(
    {EvaluationKind.FAKE, EvaluationKind.NOT_COMPETITOR, EvaluationKind.NOT_SOLD}
)

EVALUATION_DISPLAY_NAMES: dict[EvaluationKind, str] = {
    EvaluationKind.BETTER: "better",
    EvaluationKind.WORSE: "worse",
    EvaluationKind.EQUAL: "equal",
    EvaluationKind.FAKE: "fake",
    EvaluationKind.NOT_COMPETITOR: "not a competitor",
    EvaluationKind.NOT_SOLD: "overpriced",
}


@dataclass(slots=True)
class Corridor:
    """Price range; a None bound is unbounded or undetermined on that side."""

    min: int | None = None
    max: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.min is None and self.max is None

    def to_dict(self) -> dict[str, int | None]:
        return {"min": self.min, "max": self.max}


@dataclass(slots=True)
class Corridors:
    active: Corridor = field(default_factory=Corridor)
    archive: Corridor = field(default_factory=Corridor)
    optimal: Corridor = field(default_factory=Corridor)

    def to_dict(self) -> dict[str, dict[str, int | None]]:
        return {
            "active": self.active.to_dict(),
            "archive": self.archive.to_dict(),
            "optimal": self.optimal.to_dict(),
        }


@dataclass(slots=True)
class Confidence:
    level: int
    message: str
    recommendation: str
    valid_evaluations: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "level": self.level,
            "message": self.message,
            "recommendation": self.recommendation,
            "valid_evaluations": self.valid_evaluations,
        }


@dataclass(slots=True)
class EvaluationRecord:
    """Persisted form of one evaluation; object ids keep their native type."""

    object_id: str
    evaluation: EvaluationKind


@dataclass(slots=True)
class AnalysisSession:
    id: str
    name: str
    evaluations: list[EvaluationRecord] = field(default_factory=list)
    corridors: Corridors = field(default_factory=Corridors)
    created_at: datetime | None = None
    updated_at: datetime | None = None
