from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from speechcoach.schemas.plan import TherapySessionPlan


class EngineStatus(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PRESENTING = "presenting"
    SHOWING_FEEDBACK = "showing_feedback"
    ENDED = "ended"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({EngineStatus.ENDED, EngineStatus.ERROR})


@dataclass(frozen=True)
class Score:
    correct: int = 0
    total: int = 0


@dataclass(frozen=True)
class Feedback:
    is_correct: bool
    expected: str
    submitted: str


@dataclass(frozen=True)
class EngineState:
    status: EngineStatus = EngineStatus.IDLE
    # Bumped on every LoadPlan; evaluations started in an earlier run never apply.
    run: int = 0
    plan: TherapySessionPlan | None = None
    block_index: int = 0
    item_index: int = 0
    score: Score = field(default_factory=Score)
    feedback: Feedback | None = None
    error: str | None = None


@dataclass(frozen=True)
class LoadPlan:
    plan: TherapySessionPlan


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class EvaluationComplete:
    """Result of an evaluation started in `run` at the given indices."""

    run: int
    block_index: int
    item_index: int
    correct: bool
    submitted: str
    expected: str


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class End:
    pass


@dataclass(frozen=True)
class Fail:
    message: str


PracticeEvent = LoadPlan | Start | EvaluationComplete | Next | End | Fail
