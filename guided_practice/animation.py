"""Animation orchestration for lesson feedback.

Schedules non-blocking visual feedback (move slides, captures,
correctness markers, explanation highlights) as asyncio tasks. Each
animation owns the overlay elements it adds and removes them however it
ends, so cancelling never leaves orphaned highlights on the board.

The orchestrator only knows squares, pieces and styles. It has no idea
which lesson step an animation belongs to.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Awaitable, Callable

from guided_practice.errors import AnimationFailure
from guided_practice.models import MoveArrow, SquareHighlight
from guided_practice.rules import MoveResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class AnimationTiming:
    """Durations in seconds."""

    move: float = 0.2
    capture: float = 0.25
    highlight: float = 0.3
    arrow: float = 0.4
    arrow_stagger: float = 0.1
    explanation_hold: float = 0.5
    feedback: float = 1.2


@dataclass(frozen=True)
class OverlayElement:
    id: int
    kind: str
    squares: tuple[str, ...]
    style: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["squares"] = list(self.squares)
        return data


class AnimationStatus(str, Enum):
    FINISHED = "finished"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AnimationHandle:
    """Awaitable, cancellable handle for one running animation."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._task: asyncio.Task | None = None
        self._callbacks: list[Callable[[], None]] = []
        self._callbacks_run = False

    def _attach(self, task: asyncio.Task) -> None:
        self._task = task

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def cancel(self) -> None:
        """Stop the animation. Safe to call more than once."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once if the animation finishes naturally."""
        self._callbacks.append(callback)

    def _run_callbacks(self) -> None:
        if self._callbacks_run:
            return
        self._callbacks_run = True
        for callback in self._callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Animation %s completion callback failed", self.name, exc_info=True)

    @property
    def status(self) -> AnimationStatus | None:
        """Final status, or None while still running."""
        if self._task is None:
            return AnimationStatus.CANCELLED
        if not self._task.done():
            return None
        if self._task.cancelled():
            return AnimationStatus.CANCELLED
        if self._task.exception() is not None:
            return AnimationStatus.FAILED
        return self._task.result()

    async def wait(self) -> AnimationStatus:
        """Wait for the animation to end. Never raises.

        Cancelling the waiter does not cancel the animation.
        """
        if self._task is not None and not self._task.done():
            await asyncio.wait({self._task})
        return self.status


class _Scene:
    """Element bookkeeping for a single animation."""

    def __init__(self, orchestrator: AnimationOrchestrator) -> None:
        self._orchestrator = orchestrator
        self._owned: list[OverlayElement] = []

    def add(self, kind: str, squares: tuple[str, ...], style: str = "") -> OverlayElement:
        element = self._orchestrator._new_element(kind, squares, style)
        self._owned.append(element)
        self._orchestrator._notify()
        return element

    def remove(self, element: OverlayElement) -> None:
        if element in self._owned:
            self._owned.remove(element)
            self._orchestrator._remove_elements([element])

    def clear(self) -> None:
        owned, self._owned = self._owned, []
        self._orchestrator._remove_elements(owned, strict=False)

    async def sleep(self, seconds: float) -> None:
        await self._orchestrator._sleep(max(0.0, seconds))


class AnimationOrchestrator:
    """Plays move, feedback and explanation animations on a board overlay.

    Args:
        timing: Animation durations.
        sink: Optional renderer with an ``overlay_changed(elements)``
            method, called whenever the overlay changes.
        sleep: Coroutine used for waiting (``asyncio.sleep`` by default).
    """

    def __init__(
        self,
        timing: AnimationTiming | None = None,
        sink=None,
        sleep: Sleep | None = None,
    ) -> None:
        self.timing = timing or AnimationTiming()
        self._sink = sink
        self._sleep = sleep or asyncio.sleep
        self._elements: dict[int, OverlayElement] = {}
        self._ids = itertools.count(1)
        self._handles: set[AnimationHandle] = set()

    @property
    def overlay(self) -> list[OverlayElement]:
        return list(self._elements.values())

    @property
    def active(self) -> list[AnimationHandle]:
        return [h for h in self._handles if not h.done]

    # ------------------------------------------------------------------
    # Overlay bookkeeping
    # ------------------------------------------------------------------

    def _new_element(self, kind: str, squares: tuple[str, ...], style: str) -> OverlayElement:
        element = OverlayElement(next(self._ids), kind, tuple(squares), style)
        self._elements[element.id] = element
        return element

    def _remove_elements(self, elements: list[OverlayElement], strict: bool = True) -> None:
        changed = False
        for element in elements:
            if self._elements.pop(element.id, None) is not None:
                changed = True
        if not changed:
            return
        if strict:
            self._notify()
            return
        try:
            self._notify()
        except AnimationFailure:
            logger.warning("Renderer failed while clearing overlay", exc_info=True)

    def _notify(self) -> None:
        if self._sink is None:
            return
        try:
            self._sink.overlay_changed(self.overlay)
        except Exception as exc:
            raise AnimationFailure(f"Renderer rejected overlay update: {exc}") from exc

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _start(self, name: str, body: Callable[[_Scene], Awaitable[None]]) -> AnimationHandle:
        handle = AnimationHandle(name)
        task = asyncio.get_running_loop().create_task(self._run(handle, body))
        handle._attach(task)
        self._handles.add(handle)
        task.add_done_callback(lambda _t: self._handles.discard(handle))
        return handle

    async def _run(self, handle: AnimationHandle, body) -> AnimationStatus:
        scene = _Scene(self)
        try:
            await body(scene)
        except asyncio.CancelledError:
            logger.debug("Animation %s cancelled", handle.name)
            raise
        except Exception:
            logger.warning("Animation %s failed", handle.name, exc_info=True)
            return AnimationStatus.FAILED
        finally:
            scene.clear()
        handle._run_callbacks()
        return AnimationStatus.FINISHED

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()

    # ------------------------------------------------------------------
    # Animations
    # ------------------------------------------------------------------

    def play_move(self, result: MoveResult) -> AnimationHandle:
        """Slide a piece from origin to destination.

        Captures play in two phases: the captured piece fades, then the
        moving piece slides in.
        """
        timing = self.timing
        squares = (result.from_square, result.to_square)

        async def body(scene: _Scene) -> None:
            if result.captured:
                half = timing.capture / 2
                fade = scene.add("fade", (result.to_square,), result.captured)
                await scene.sleep(half)
                scene.remove(fade)
                slide = scene.add("slide", squares, result.piece)
                await scene.sleep(half)
                scene.remove(slide)
            else:
                slide = scene.add("slide", squares, result.piece)
                await scene.sleep(timing.move)
                scene.remove(slide)

        return self._start(f"move {result.uci}", body)

    def play_feedback(self, correct: bool, square: str) -> AnimationHandle:
        """Show a transient correct/incorrect marker on a square."""
        style = "correct" if correct else "incorrect"

        async def body(scene: _Scene) -> None:
            marker = scene.add("feedback", (square,), style)
            await scene.sleep(self.timing.feedback)
            scene.remove(marker)

        return self._start(f"feedback {style} {square}", body)

    def play_explanation(
        self,
        highlights: tuple[SquareHighlight, ...] | list[SquareHighlight],
        arrows: tuple[MoveArrow, ...] | list[MoveArrow],
    ) -> AnimationHandle:
        """Highlight advisory squares one by one, then draw staggered arrows."""
        timing = self.timing

        async def body(scene: _Scene) -> None:
            for highlight in highlights:
                scene.add("highlight", (highlight.square,), highlight.color)
                await scene.sleep(timing.highlight)
            for arrow in arrows:
                scene.add("arrow", (arrow.from_square, arrow.to_square), arrow.color)
                await scene.sleep(timing.arrow_stagger)
            if arrows:
                await scene.sleep(timing.arrow)
            await scene.sleep(timing.explanation_hold)
            scene.clear()

        return self._start("explanation", body)
