"""Shared test fixtures for the guided practice suite.

Usage:
    pytest tests/                  # Fast, mocked engine (no Stockfish)
    pytest tests/ --e2e            # Real Stockfish for integration tests

Fixtures:
    fake_clock         - Virtual clock replacing asyncio.sleep; tests move
                         time forward explicitly with ``await clock.advance(s)``.
    make_lesson        - Factory building a LessonDefinition from steps.
    make_machine       - Factory building a LessonStateMachine on the fake
                         clock with zero grace delays; closed on teardown.
    recording_listener - LessonListener that records every notification.
    mock_chess_engine  - Mock ChessEngine returning the last legal move.
    enable_validation  - Sets GUIDED_PRACTICE_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from unittest.mock import MagicMock

import chess
import pytest
import pytest_asyncio

from guided_practice.animation import AnimationOrchestrator
from guided_practice.machine import LessonListener, LessonStateMachine, TimingConfig
from guided_practice.models import LessonDefinition

START_FEN = chess.STARTING_FEN


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --e2e CLI flag for real Stockfish tests."""
    parser.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run with real Stockfish engine (no mocks).",
    )


def pytest_configure(config):
    """Register the e2e marker."""
    config.addinivalue_line(
        "markers", "e2e: mark test as end-to-end (requires real Stockfish)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip e2e tests unless --e2e is passed."""
    if config.getoption("--e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --e2e and a Stockfish binary")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


# ---------------------------------------------------------------------------
# Fake clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic stand-in for asyncio.sleep and time.monotonic.

    Sleepers park on futures ordered by deadline. ``advance`` wakes them
    in deadline order and lets the event loop run between wake-ups, so
    chained sleeps inside the advanced window also fire.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, next(self._seq), future))
        await future

    @property
    def pending(self) -> int:
        return sum(1 for _, _, f in self._sleepers if not f.done())

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self.now = deadline
            if not future.done():
                future.set_result(None)
                await self.settle()
        self.now = target
        await self.settle()

    async def settle(self) -> None:
        """Let ready tasks run until the loop goes quiet."""
        for _ in range(50):
            await asyncio.sleep(0)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Lesson and machine factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_lesson():
    """Build a LessonDefinition from steps."""

    def _make(*steps, fen: str = START_FEN, lesson_id: str = "test-lesson", **kwargs) -> LessonDefinition:
        return LessonDefinition(id=lesson_id, initial_fen=fen, steps=tuple(steps), **kwargs)

    return _make


class RecordingListener(LessonListener):
    """Records every host notification in order."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.summaries = []
        self.failures: list[str] = []

    def on_step_changed(self, step_index: int, total_steps: int) -> None:
        self.events.append(("step", step_index, total_steps))

    def on_session_summary(self, summary) -> None:
        self.summaries.append(summary)
        self.events.append(("summary",))

    def on_lesson_completed(self) -> None:
        self.events.append(("completed",))

    def on_lesson_failed(self, reason: str) -> None:
        self.failures.append(reason)
        self.events.append(("failed", reason))

    @property
    def step_changes(self) -> list[int]:
        return [e[1] for e in self.events if e[0] == "step"]


@pytest.fixture()
def recording_listener() -> RecordingListener:
    return RecordingListener()


@pytest_asyncio.fixture()
async def make_machine(fake_clock, recording_listener):
    """Build LessonStateMachines on the fake clock.

    Grace delays default to zero so accepted moves advance without
    the test having to move the clock.
    """
    machines: list[LessonStateMachine] = []

    def _make(lesson: LessonDefinition, **kwargs) -> LessonStateMachine:
        kwargs.setdefault(
            "timing",
            TimingConfig(grace_window=0.0, computer_advance_delay=0.0, computer_guidance_hold=0.0),
        )
        kwargs.setdefault("sleep", fake_clock.sleep)
        kwargs.setdefault("clock", fake_clock.time)
        kwargs.setdefault("listener", recording_listener)
        kwargs.setdefault("animator", AnimationOrchestrator(sleep=fake_clock.sleep))
        machine = LessonStateMachine(lesson, **kwargs)
        machines.append(machine)
        return machine

    yield _make

    for machine in machines:
        await machine.close()
    await fake_clock.settle()


# ---------------------------------------------------------------------------
# Mock chess engine fixture
# ---------------------------------------------------------------------------


def _make_mock_engine():
    """Create a mock ChessEngine that returns the last legal move.

    The last move differs from the first-legal-move fallback, so tests
    can tell which source produced a recovery move.
    """
    mock = MagicMock()

    def _get_engine_move(board: chess.Board):
        legal = list(board.legal_moves)
        if not legal:
            raise ValueError("No legal moves available")
        return legal[-1]

    def _move_at_level(board: chess.Board, level: int):
        mock.set_bot_level(level)
        return mock.get_engine_move(board)

    mock.get_engine_move = MagicMock(side_effect=_get_engine_move)
    mock.set_bot_level = MagicMock()
    mock.move_at_level = MagicMock(side_effect=_move_at_level)
    mock.close = MagicMock()
    return mock


@pytest.fixture()
def mock_chess_engine():
    return _make_mock_engine()


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture()
def enable_validation(monkeypatch):
    """Enable response schema validation for the test."""
    monkeypatch.setenv("GUIDED_PRACTICE_VALIDATE", "1")
    yield
