"""Lesson step state machine for guided practice.

Drives a learner through a lesson's step graph: arbitrates user moves,
plays scripted computer replies, runs step timers, and reconciles
non-blocking animations with step progression.

Concurrency model: everything runs on one asyncio loop. A transition
lock serialises step changes, so a new step's entry never starts
before the previous step's exit (timer and animation cancellation) has
finished. At most one step timer is pending at any time. Only this
module mutates SessionState.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Awaitable, Callable

import chess

from guided_practice.animation import AnimationHandle, AnimationOrchestrator
from guided_practice.arbitrator import MoveVerdict, advisory_message, classify
from guided_practice.errors import IllegalMove, UnknownChoiceTarget, UnplayableStep, UnresolvableMove
from guided_practice.explainer import explain_move
from guided_practice.models import (
    Choice,
    ChoiceStep,
    ComputerMoveStep,
    ExplanationStep,
    Guidance,
    LessonDefinition,
    MoveExplanation,
    SessionSummary,
    Step,
    StepPayload,
    UserMoveStep,
)
from guided_practice.resolver import ComputerMoveResolver, recovery_move
from guided_practice.rules import MoveDescriptor, Position, RulesAdapter
from guided_practice.scorer import SessionScorer

logger = logging.getLogger(__name__)


class LessonState(str, Enum):
    IDLE = "idle"
    AWAITING_USER_MOVE = "awaiting-user-move"
    COMPUTER_THINKING = "computer-thinking"
    SHOWING_EXPLANATION = "showing-explanation"
    AWAITING_CHOICE = "awaiting-choice"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TimingConfig:
    """Progression delays in seconds."""

    # User move accepted -> next step, unless feedback finishes sooner
    grace_window: float = 0.6
    # Computer move played -> next step, unless the slide finishes sooner
    computer_advance_delay: float = 0.3
    # Upper bound on waiting for a computer step's highlights and arrows
    computer_guidance_hold: float = 2.0
    time_bonus_think_seconds: float = 10.0


@dataclass
class StepTimer:
    """Auto-advance timer bound to one step entry."""

    step_index: int
    generation: int
    seconds: float
    task: asyncio.Task

    def cancel(self) -> None:
        self.task.cancel()


@dataclass
class SessionState:
    """Mutable state of one lesson attempt."""

    position: Position
    scorer: SessionScorer
    step_index: int = 0
    timer: StepTimer | None = None
    last_computer_move: MoveExplanation | None = None
    history: list[str] = field(default_factory=list)

    @property
    def correct_moves(self) -> int:
        return self.scorer.correct_moves

    @property
    def mistakes(self) -> int:
        return self.scorer.mistakes


@dataclass(frozen=True)
class MoveOutcome:
    """Result of a learner move attempt."""

    verdict: MoveVerdict | None
    accepted: bool
    message: str
    san: str | None = None


class LessonListener:
    """Host UI notifications. Subclass and override what you need."""

    def on_step_changed(self, step_index: int, total_steps: int) -> None:
        pass

    def on_session_summary(self, summary: SessionSummary) -> None:
        pass

    def on_lesson_completed(self) -> None:
        pass

    def on_lesson_failed(self, reason: str) -> None:
        pass


class LessonStateMachine:
    """Runs one learner's attempt at a lesson.

    Args:
        lesson: The authored lesson to play.
        rules: Rules engine adapter.
        resolver: Scripted computer move resolver.
        animator: Animation orchestrator for board feedback.
        listener: Host UI listener.
        engine: Optional ChessEngine for unscripted and recovery moves.
        timing: Progression delays.
        sleep: Coroutine used for all waiting (timers, grace windows).
        clock: Monotonic clock used to measure think time.
    """

    def __init__(
        self,
        lesson: LessonDefinition,
        *,
        rules: RulesAdapter | None = None,
        resolver: ComputerMoveResolver | None = None,
        animator: AnimationOrchestrator | None = None,
        listener: LessonListener | None = None,
        engine=None,
        timing: TimingConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.lesson = lesson
        self._rules = rules or RulesAdapter()
        self._resolver = resolver or ComputerMoveResolver(self._rules)
        self._sleep = sleep or asyncio.sleep
        self._animator = animator or AnimationOrchestrator(sleep=self._sleep)
        self._listener = listener or LessonListener()
        self._engine = engine
        self._timing = timing or TimingConfig()
        self._clock = clock or time.monotonic
        self._initial_position = self._rules.parse(lesson.initial_fen)

        self._lock = asyncio.Lock()
        self._generation = 0
        self._step_animations: list[AnimationHandle] = []
        self._step_started_at = 0.0

        self.state = LessonState.IDLE
        self.failure_reason: str | None = None
        self.session = self._new_session()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def current_step(self) -> Step | None:
        index = self.session.step_index
        if 0 <= index < len(self.lesson.steps):
            return self.lesson.steps[index]
        return None

    @property
    def interaction_enabled(self) -> bool:
        return self.state is LessonState.AWAITING_USER_MOVE and not self._lock.locked()

    async def start(self) -> None:
        """Begin the lesson from its first step."""
        async with self._lock:
            logger.info("Starting lesson %s", self.lesson.id)
            await self._reset_and_enter()

    async def restart(self) -> None:
        """Discard progress and start over from the first step."""
        async with self._lock:
            logger.info("Restarting lesson %s", self.lesson.id)
            await self._reset_and_enter()

    async def close(self) -> None:
        """Abandon the attempt, cancelling timers and animations."""
        async with self._lock:
            self._leave_step()
            self._animator.cancel_all()
            if self.state not in (LessonState.COMPLETED, LessonState.FAILED):
                self.state = LessonState.IDLE

    async def attempt_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveOutcome:
        """Handle a move attempt from the board renderer.

        Returns:
            MoveOutcome. ``verdict`` is None when the board is not
            accepting moves (wrong step kind or a transition in flight).
        """
        if not self.interaction_enabled:
            return MoveOutcome(None, False, "The board is not accepting moves right now.")

        attempt = MoveDescriptor(
            from_square.strip().lower(),
            to_square.strip().lower(),
            promotion.strip().lower() if promotion else None,
        )

        async with self._lock:
            step = self.current_step
            if not isinstance(step, UserMoveStep):
                return MoveOutcome(None, False, "The board is not accepting moves right now.")

            position = self.session.position
            think_time = self._clock() - self._step_started_at
            try:
                arbitration = classify(attempt, step, position, self._rules)
            except UnplayableStep as error:
                self._fail(str(error))
                return MoveOutcome(None, False, str(error))
            message = advisory_message(arbitration.verdict, step, position, attempt)

            if arbitration.verdict is not MoveVerdict.ALLOWED:
                self.session.scorer.record_move(False, think_time)
                if arbitration.verdict is MoveVerdict.BLOCKED:
                    self._track(self._animator.play_feedback(False, attempt.to_square))
                logger.debug("Step %s: %s classified %s", step.id, attempt.uci(), arbitration.verdict.value)
                return MoveOutcome(arbitration.verdict, False, message)

            try:
                new_position, result = self._rules.apply_move(position, arbitration.move)
            except IllegalMove:
                self.session.scorer.record_move(False, think_time)
                self._track(self._animator.play_feedback(False, attempt.to_square))
                return MoveOutcome(MoveVerdict.BLOCKED, False, advisory_message(MoveVerdict.BLOCKED, step, position))

            self.session.position = new_position
            self.session.history.append(result.san)
            self.session.scorer.record_move(True, think_time)

            move_animation = self._track(self._animator.play_move(result))
            feedback = self._track(self._animator.play_feedback(True, result.to_square))
            await self._settle([move_animation, feedback], self._timing.grace_window)
            await self._enter_step(self.session.step_index + 1)
            return MoveOutcome(MoveVerdict.ALLOWED, True, message, result.san)

    async def advance(self) -> bool:
        """Continue past an explanation step, as if its timer ran out.

        Returns:
            True if the lesson advanced.
        """
        if self.state is not LessonState.SHOWING_EXPLANATION or self._lock.locked():
            return False
        async with self._lock:
            if not isinstance(self.current_step, ExplanationStep):
                return False
            await self._enter_step(self.session.step_index + 1)
            return True

    async def select_choice(self, index: int) -> Choice | None:
        """Follow the branch of a choice step.

        An option that names a step missing from the lesson fails the
        attempt and notifies the host.

        Returns:
            The selected Choice, or None if no choice is pending.

        Raises:
            IndexError: If ``index`` is not a valid option.
        """
        if self.state is not LessonState.AWAITING_CHOICE or self._lock.locked():
            return None
        async with self._lock:
            step = self.current_step
            if not isinstance(step, ChoiceStep):
                return None
            if not 0 <= index < len(step.choices):
                raise IndexError(f"Step {step.id} has no choice {index}")

            choice = step.choices[index]
            target = self.lesson.index_of(choice.next_step_id)
            if target is None:
                error = UnknownChoiceTarget(self.lesson.id, choice.next_step_id)
                self._fail(str(error))
                return choice

            await self._enter_step(target)
            return choice

    def summary(self) -> SessionSummary:
        return self.session.scorer.summary()

    def payload(self) -> StepPayload:
        """Renderable snapshot of the current step."""
        step = self.current_step
        guidance = step.guidance if step is not None else Guidance()
        timer = self.session.timer
        last = self.session.last_computer_move

        choices = []
        if isinstance(step, ChoiceStep):
            choices = [
                {"index": i, "text": c.text, "explanation": c.explanation}
                for i, c in enumerate(step.choices)
            ]

        return StepPayload(
            lesson_id=self.lesson.id,
            state=self.state.value,
            step_index=self.session.step_index,
            total_steps=self.lesson.total_steps,
            fen=self.session.position.fen,
            interaction_enabled=self.interaction_enabled,
            step_id=step.id if step is not None else None,
            step_kind=step.kind.value if step is not None else None,
            title=step.title if step is not None else "",
            description=step.description if step is not None else "",
            arrows=[asdict(a) for a in guidance.arrows],
            highlights=[asdict(h) for h in guidance.highlights],
            tooltip=asdict(guidance.tooltip) if guidance.tooltip else None,
            choices=choices,
            timer_seconds=timer.seconds if timer is not None else None,
            overlay=[e.to_dict() for e in self._animator.overlay],
            last_computer_move=asdict(last) if last is not None else None,
            move_list=list(self.session.history),
            correct_moves=self.session.correct_moves,
            mistakes=self.session.mistakes,
            failure_reason=self.failure_reason,
        )

    # ------------------------------------------------------------------
    # Transitions (caller holds the lock)
    # ------------------------------------------------------------------

    def _new_session(self) -> SessionState:
        scorer = SessionScorer(
            thresholds=self.lesson.scoring,
            base_level=self.lesson.bot_level,
            criteria=self.lesson.success_criteria,
            time_bonus_seconds=self._timing.time_bonus_think_seconds,
        )
        return SessionState(position=self._initial_position, scorer=scorer)

    async def _reset_and_enter(self) -> None:
        self._leave_step()
        self._animator.cancel_all()
        self.session = self._new_session()
        self.failure_reason = None
        await self._enter_step(0)

    def _leave_step(self) -> None:
        """Exit logic for the current step: timer and animations go."""
        self._generation += 1
        self._cancel_timer()
        for handle in self._step_animations:
            handle.cancel()
        self._step_animations = []

    async def _enter_step(self, index: int) -> None:
        total = self.lesson.total_steps
        while True:
            self._leave_step()
            if index >= total:
                self.session.step_index = total
                self._complete()
                return

            self.session.step_index = index
            step = self.lesson.steps[index]
            logger.debug("Lesson %s: entering step %d/%d (%s, %s)",
                         self.lesson.id, index + 1, total, step.id, step.kind.value)

            if isinstance(step, ComputerMoveStep):
                self.state = LessonState.COMPUTER_THINKING
                self._notify("on_step_changed", index, total)
                await self._play_computer_step(step)
                index += 1
                continue

            if isinstance(step, UserMoveStep):
                self.state = LessonState.AWAITING_USER_MOVE
                self._step_started_at = self._clock()
            elif isinstance(step, ExplanationStep):
                self.state = LessonState.SHOWING_EXPLANATION
            elif isinstance(step, ChoiceStep):
                self.state = LessonState.AWAITING_CHOICE
            else:
                raise TypeError(f"Unsupported step type: {type(step).__name__}")

            self._show_guidance(step.guidance)
            # User-move steps never carry a timer
            time_limit = getattr(step, "time_limit_seconds", None)
            if time_limit:
                self._start_timer(time_limit)
            self._notify("on_step_changed", index, total)
            return

    async def _play_computer_step(self, step: ComputerMoveStep) -> None:
        position = self.session.position
        resolved = None

        if step.computer_move:
            try:
                resolution = self._resolver.resolve(step.computer_move, position)
            except UnresolvableMove as exc:
                logger.warning("Step %s: %s. Playing a recovery move.", step.id, exc)
            else:
                resolved = (resolution.position, resolution.result)

        if resolved is None:
            move = await self._recovery_move(step, position)
            if move is None:
                logger.warning("Step %s: no legal moves in %s, skipping computer move", step.id, position.fen)
                return
            resolved = self._rules.apply_chess_move(position, move)

        new_position, result = resolved
        explanation = explain_move(position.board(), chess.Move.from_uci(result.uci))

        self.session.position = new_position
        self.session.history.append(result.san)
        self.session.last_computer_move = explanation

        handles = [self._track(self._animator.play_move(result))]
        grace = self._timing.computer_advance_delay
        guidance_animation = self._show_guidance(step.guidance)
        if guidance_animation is not None:
            # Leaving the step cancels its guidance, so let it play out first
            handles.append(guidance_animation)
            grace = max(grace, self._timing.computer_guidance_hold)
        await self._settle(handles, grace)

    async def _recovery_move(self, step: ComputerMoveStep, position: Position) -> chess.Move | None:
        if self._engine is None:
            return recovery_move(position)

        level = step.bot_level or self.lesson.bot_level
        return await asyncio.to_thread(recovery_move, position, self._engine, level)

    def _complete(self) -> None:
        self.state = LessonState.COMPLETED
        summary = self.session.scorer.summary()
        logger.info(
            "Lesson %s completed: %d correct, %d mistakes",
            self.lesson.id, summary.correct_moves, summary.mistakes,
        )
        self._notify("on_session_summary", summary)
        self._notify("on_lesson_completed")

    def _fail(self, reason: str) -> None:
        self._leave_step()
        self.state = LessonState.FAILED
        self.failure_reason = reason
        logger.error("Lesson %s failed: %s", self.lesson.id, reason)
        self._notify("on_lesson_failed", reason)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _start_timer(self, seconds: float) -> None:
        if self.session.timer is not None:
            raise RuntimeError("A step timer is already pending")
        generation = self._generation
        task = asyncio.get_running_loop().create_task(self._run_timer(generation, seconds))
        self.session.timer = StepTimer(self.session.step_index, generation, seconds, task)

    def _cancel_timer(self) -> None:
        timer = self.session.timer
        if timer is not None:
            timer.cancel()
            self.session.timer = None

    async def _run_timer(self, generation: int, seconds: float) -> None:
        await self._sleep(seconds)
        timer = self.session.timer
        if timer is None or timer.generation != generation:
            return
        # Detach: from here on this task drives the transition itself.
        self.session.timer = None
        try:
            async with self._lock:
                if generation != self._generation:
                    return
                await self._on_timeout()
        except Exception:
            logger.exception("Timed transition failed in lesson %s", self.lesson.id)

    async def _on_timeout(self) -> None:
        step = self.current_step
        if isinstance(step, ExplanationStep):
            logger.debug("Step %s timed out, advancing", step.id)
            await self._enter_step(self.session.step_index + 1)
        elif isinstance(step, ChoiceStep):
            if self.session.step_index == self.lesson.total_steps - 1:
                logger.debug("Final choice step %s timed out, completing", step.id)
                self._leave_step()
                self.session.step_index = self.lesson.total_steps
                self._complete()
            else:
                logger.debug("Choice step %s timed out, waiting for a selection", step.id)

    # ------------------------------------------------------------------
    # Animations and notifications
    # ------------------------------------------------------------------

    def _track(self, handle: AnimationHandle) -> AnimationHandle:
        self._step_animations.append(handle)
        return handle

    def _show_guidance(self, guidance: Guidance) -> AnimationHandle | None:
        if guidance.highlights or guidance.arrows:
            return self._track(self._animator.play_explanation(guidance.highlights, guidance.arrows))
        return None

    async def _settle(self, handles: list[AnimationHandle], grace: float) -> None:
        """Wait for animations or the grace window, whichever ends first."""
        pending = [h for h in handles if not h.done]
        if not pending:
            return
        animations = asyncio.ensure_future(asyncio.gather(*(h.wait() for h in pending)))
        grace_timer = asyncio.ensure_future(self._sleep(grace))
        try:
            await asyncio.wait({animations, grace_timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            animations.cancel()
            grace_timer.cancel()

    def _notify(self, method: str, *args) -> None:
        callback = getattr(self._listener, method, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Listener %s failed", method)
