"""Exception taxonomy for the guided practice lesson engine.

IllegalMove and UnresolvableMove are recovered locally by the state
machine. UnknownChoiceTarget and UnplayableStep end the lesson attempt.
AnimationFailure never leaves the animation orchestrator.
"""

from __future__ import annotations


class GuidedPracticeError(Exception):
    """Base class for lesson engine errors."""


class IllegalMove(GuidedPracticeError, ValueError):
    """The rules engine rejected a move in the given position."""

    def __init__(self, move: str, fen: str) -> None:
        super().__init__(f"Illegal move {move!r} in position {fen}")
        self.move = move
        self.fen = fen


class UnresolvableMove(GuidedPracticeError):
    """No interpretation strategy could apply a scripted computer move."""

    def __init__(self, scripted: str, fen: str, attempted: list[str]) -> None:
        super().__init__(
            f"Could not resolve scripted move {scripted!r} in position {fen} "
            f"(tried: {', '.join(attempted)})"
        )
        self.scripted = scripted
        self.fen = fen
        self.attempted = attempted


class UnknownChoiceTarget(GuidedPracticeError):
    """A choice option names a step id that does not exist in the lesson."""

    def __init__(self, lesson_id: str, step_id: str) -> None:
        super().__init__(
            f"Lesson {lesson_id!r} has no step {step_id!r} to branch to"
        )
        self.lesson_id = lesson_id
        self.step_id = step_id


class LessonContentError(GuidedPracticeError, ValueError):
    """Lesson data is malformed and cannot be loaded."""


class AnimationFailure(GuidedPracticeError):
    """The board renderer failed while an animation was running."""


class UnplayableStep(GuidedPracticeError):
    """None of a user-move step's allowed moves can be played here."""

    def __init__(self, step_id: str, fen: str, allowed: tuple[str, ...]) -> None:
        super().__init__(
            f"Step {step_id!r} allows {', '.join(allowed)} but none is legal in position {fen}"
        )
        self.step_id = step_id
        self.fen = fen
        self.allowed = allowed
