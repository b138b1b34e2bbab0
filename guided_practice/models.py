"""Shared data models for the guided practice lesson engine.

Lesson content (LessonDefinition and its Step variants) is immutable
for the lifetime of a session. StepPayload and SessionSummary are the
contract towards the board renderer and the host UI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class StepKind(str, Enum):
    USER_MOVE = "user-move"
    COMPUTER_MOVE = "computer-move"
    EXPLANATION = "explanation"
    CHOICE = "choice"


@dataclass(frozen=True)
class MoveArrow:
    from_square: str
    to_square: str
    color: str = "green"
    style: str = "solid"


@dataclass(frozen=True)
class SquareHighlight:
    square: str
    color: str = "suggest"
    animation: str = "none"


@dataclass(frozen=True)
class Tooltip:
    square: str
    message: str
    kind: str = "hint"


@dataclass(frozen=True)
class Guidance:
    """Advisory visuals for a step. Never affects legality."""

    arrows: tuple[MoveArrow, ...] = ()
    highlights: tuple[SquareHighlight, ...] = ()
    tooltip: Tooltip | None = None


@dataclass(frozen=True)
class Choice:
    text: str
    next_step_id: str
    explanation: str = ""


@dataclass(frozen=True)
class UserMoveStep:
    id: str
    title: str = ""
    description: str = ""
    guidance: Guidance = field(default_factory=Guidance)
    allowed_moves: tuple[str, ...] = ()
    forbidden_moves: tuple[str, ...] = ()
    suggested_move: str | None = None

    kind = StepKind.USER_MOVE


@dataclass(frozen=True)
class ComputerMoveStep:
    id: str
    title: str = ""
    description: str = ""
    guidance: Guidance = field(default_factory=Guidance)
    computer_move: str | None = None
    bot_level: int | None = None

    kind = StepKind.COMPUTER_MOVE


@dataclass(frozen=True)
class ExplanationStep:
    id: str
    title: str = ""
    description: str = ""
    guidance: Guidance = field(default_factory=Guidance)
    time_limit_seconds: float | None = None

    kind = StepKind.EXPLANATION


@dataclass(frozen=True)
class ChoiceStep:
    id: str
    title: str = ""
    description: str = ""
    guidance: Guidance = field(default_factory=Guidance)
    choices: tuple[Choice, ...] = ()
    time_limit_seconds: float | None = None

    kind = StepKind.CHOICE


Step = Union[UserMoveStep, ComputerMoveStep, ExplanationStep, ChoiceStep]


@dataclass(frozen=True)
class SuccessCriteria:
    min_correct_moves: int = 1
    max_mistakes: int = 3
    time_bonus: bool = False


@dataclass(frozen=True)
class ScoringThresholds:
    """Success-rate thresholds that move the recommended difficulty."""

    raise_above: float = 0.8
    lower_below: float = 0.5
    min_level: int = 1
    max_level: int = 10


@dataclass(frozen=True)
class LessonDefinition:
    """Authored lesson: read-only to the engine."""

    id: str
    initial_fen: str
    steps: tuple[Step, ...]
    title: str = ""
    theme: str = ""
    bot_level: int = 3
    objectives: tuple[str, ...] = ()
    success_criteria: SuccessCriteria = field(default_factory=SuccessCriteria)
    scoring: ScoringThresholds = field(default_factory=ScoringThresholds)

    def index_of(self, step_id: str) -> int | None:
        """Return the index of the step with this id, or None."""
        for i, step in enumerate(self.steps):
            if step.id == step_id:
                return i
        return None

    @property
    def total_steps(self) -> int:
        return len(self.steps)


@dataclass(frozen=True)
class MoveExplanation:
    """Educational commentary on a computer move."""

    san: str
    uci: str
    text: str
    category: str
    teaching_point: str | None = None
    alternatives: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionSummary:
    correct_moves: int
    mistakes: int
    success_rate: float
    recommended_next_difficulty: int
    feedback_message: str
    average_think_time: float = 0.0
    passed: bool = False
    time_bonus: bool = False


@dataclass
class StepPayload:
    """Everything the board renderer needs to draw the current step."""

    lesson_id: str
    state: str
    step_index: int
    total_steps: int
    fen: str
    interaction_enabled: bool
    step_id: str | None = None
    step_kind: str | None = None
    title: str = ""
    description: str = ""
    arrows: list[dict] = field(default_factory=list)
    highlights: list[dict] = field(default_factory=list)
    tooltip: dict | None = None
    choices: list[dict] = field(default_factory=list)
    timer_seconds: float | None = None
    overlay: list[dict] = field(default_factory=list)
    last_computer_move: dict | None = None
    move_list: list[str] = field(default_factory=list)
    correct_moves: int = 0
    mistakes: int = 0
    failure_reason: str | None = None
