"""Session scoring for guided practice lessons.

Accumulates correct moves and mistakes for one lesson attempt and
derives the performance summary shown when the lesson ends.
"""

from __future__ import annotations

from guided_practice.models import ScoringThresholds, SessionSummary, SuccessCriteria

# (minimum success rate, message), checked in order
_FEEDBACK_MESSAGES = [
    (0.8, "Excellent work! You're ready for more challenging lessons."),
    (0.6, "Good progress! Keep practicing these patterns."),
]
_DEFAULT_FEEDBACK = "Take your time to think through each move. Practice makes perfect!"

_DEFAULT_TIME_BONUS_SECONDS = 10.0


def success_rate(correct_moves: int, mistakes: int) -> float:
    """Fraction of correct moves; 0.0 when nothing was recorded."""
    total = correct_moves + mistakes
    if total == 0:
        return 0.0
    return correct_moves / total


def feedback_message(rate: float) -> str:
    for threshold, message in _FEEDBACK_MESSAGES:
        if rate > threshold:
            return message
    return _DEFAULT_FEEDBACK


class SessionScorer:
    """Counts moves for one lesson attempt."""

    def __init__(
        self,
        thresholds: ScoringThresholds | None = None,
        base_level: int = 5,
        criteria: SuccessCriteria | None = None,
        time_bonus_seconds: float = _DEFAULT_TIME_BONUS_SECONDS,
    ) -> None:
        self._thresholds = thresholds or ScoringThresholds()
        self._base_level = base_level
        self._criteria = criteria or SuccessCriteria()
        self._time_bonus_seconds = time_bonus_seconds
        self._correct_moves = 0
        self._mistakes = 0
        self._think_times: list[float] = []

    @property
    def correct_moves(self) -> int:
        return self._correct_moves

    @property
    def mistakes(self) -> int:
        return self._mistakes

    def record_move(self, correct: bool, think_time: float = 0.0) -> None:
        """Record one move attempt.

        Args:
            correct: Whether the attempt was accepted.
            think_time: Seconds the learner spent on the attempt.
        """
        if correct:
            self._correct_moves += 1
        else:
            self._mistakes += 1
        self._think_times.append(max(0.0, think_time))

    def reset(self) -> None:
        self._correct_moves = 0
        self._mistakes = 0
        self._think_times = []

    def recommended_level(self) -> int:
        """Next difficulty level based on this session's success rate.

        Holds steady until at least one move has been recorded.
        """
        t = self._thresholds
        level = self._base_level
        if self._correct_moves + self._mistakes > 0:
            rate = success_rate(self._correct_moves, self._mistakes)
            if rate > t.raise_above:
                level += 1
            elif rate < t.lower_below:
                level -= 1
        return max(t.min_level, min(t.max_level, level))

    def average_think_time(self) -> float:
        if not self._think_times:
            return 0.0
        return sum(self._think_times) / len(self._think_times)

    def summary(self) -> SessionSummary:
        rate = success_rate(self._correct_moves, self._mistakes)
        passed = (
            self._correct_moves >= self._criteria.min_correct_moves
            and self._mistakes <= self._criteria.max_mistakes
        )
        avg = self.average_think_time()
        return SessionSummary(
            correct_moves=self._correct_moves,
            mistakes=self._mistakes,
            success_rate=rate,
            recommended_next_difficulty=self.recommended_level(),
            feedback_message=feedback_message(rate),
            average_think_time=round(avg, 3),
            passed=passed,
            time_bonus=(
                self._criteria.time_bonus
                and passed
                and avg <= self._time_bonus_seconds
            ),
        )
