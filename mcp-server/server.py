"""MCP server for the Guided Practice Lesson Engine.

Exposes guided lesson tools via FastMCP. Lesson sessions are stored in
memory keyed by UUID. The current step payload is synced to
data/current_lesson.json after every transition for TUI consumption,
including transitions driven by step timers between tool calls.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import uuid
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from guided_practice.arbitrator import normalize_move_string
from guided_practice.content import load_lessons, validate_lesson
from guided_practice.engine import ChessEngine
from guided_practice.errors import LessonContentError
from guided_practice.machine import LessonListener, LessonStateMachine
from guided_practice.models import LessonDefinition
from guided_practice.rules import MoveDescriptor

from response_schemas import minify_step_payload, minify_summary  # noqa: E402

logger = logging.getLogger("guided_practice.mcp")

mcp = FastMCP("guided-practice")

# In-memory session store: session_id -> {machine, lesson_id}
_sessions: dict[str, dict] = {}

_DATA_DIR = _PROJECT_ROOT / "data"
_LESSONS_PATH = Path(os.environ.get("GUIDED_PRACTICE_LESSONS", _DATA_DIR / "lessons.json"))

_lessons: dict[str, LessonDefinition] | None = None

# Shared Stockfish for unscripted/recovery moves (graceful degradation if missing)
_engine: ChessEngine | None = None
_engine_checked = False


def _get_lessons() -> dict[str, LessonDefinition]:
    """Load the lesson library once.

    Raises:
        LessonContentError: If the library file is unreadable or malformed.
    """
    global _lessons
    if _lessons is None:
        _lessons = load_lessons(_LESSONS_PATH)
    return _lessons


def _get_engine() -> ChessEngine | None:
    """Start Stockfish on first use. Returns None when it isn't installed."""
    global _engine, _engine_checked
    if not _engine_checked:
        _engine_checked = True
        try:
            _engine = ChessEngine()
        except FileNotFoundError as exc:
            logger.warning("%s Recovery moves will use the first legal move.", exc)
    return _engine


def _build_payload(session_id: str, session: dict) -> dict:
    """Build the full payload dict for a session.

    Args:
        session_id: UUID of the session.
        session: Internal session record.

    Returns:
        StepPayload dict plus session_id and start_black.
    """
    machine: LessonStateMachine = session["machine"]
    payload = asdict(machine.payload())
    payload["session_id"] = session_id
    payload["lesson_title"] = machine.lesson.title
    payload["start_black"] = machine.lesson.initial_fen.split()[1] == "b"
    return payload


def _sync_lesson_json(payload: dict) -> None:
    """Write the step payload to data/current_lesson.json atomically.

    Uses temp file + os.replace() for atomic write.

    Args:
        payload: Full step payload dict to persist.
    """
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    target = _DATA_DIR / "current_lesson.json"
    tmp = _DATA_DIR / "current_lesson.tmp"
    tmp.write_text(
        json.dumps(payload, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    os.replace(tmp, target)


def _sync_session(session_id: str) -> dict | None:
    session = _sessions.get(session_id)
    if session is None:
        return None
    payload = _build_payload(session_id, session)
    _sync_lesson_json(payload)
    return payload


class _SyncListener(LessonListener):
    """Keeps current_lesson.json in step with the state machine.

    Syncs are deferred with call_soon so the file reflects the state
    after the transition has released its lock.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id

    def _schedule_sync(self) -> None:
        asyncio.get_running_loop().call_soon(_sync_session, self.session_id)

    def on_step_changed(self, step_index: int, total_steps: int) -> None:
        self._schedule_sync()

    def on_lesson_completed(self) -> None:
        self._schedule_sync()

    def on_lesson_failed(self, reason: str) -> None:
        logger.warning("Session %s failed: %s", self.session_id, reason)
        self._schedule_sync()


def _get_session(session_id: str) -> dict | None:
    """Look up a session by ID.

    Args:
        session_id: UUID string.

    Returns:
        Session record dict or None if not found.
    """
    return _sessions.get(session_id)


def _state_response(session_id: str) -> dict:
    payload = _sync_session(session_id)
    return minify_step_payload(payload)


# ---------------------------------------------------------------------------
# Lesson library tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_lessons() -> dict:
    """List the guided lessons available to start.

    Returns:
        Dict with lessons list (id, title, theme, bot_level, steps).
    """
    try:
        lessons = _get_lessons()
    except LessonContentError as exc:
        return {"error": str(exc)}

    return {
        "lessons": [
            {
                "id": lesson.id,
                "title": lesson.title,
                "theme": lesson.theme,
                "bot_level": lesson.bot_level,
                "steps": lesson.total_steps,
            }
            for lesson in lessons.values()
        ]
    }


@mcp.tool()
def validate_lessons() -> dict:
    """Check every lesson for authoring mistakes.

    Returns:
        Dict with valid flag and issues per lesson id.
    """
    try:
        lessons = _get_lessons()
    except LessonContentError as exc:
        return {"error": str(exc)}

    issues = {}
    for lesson in lessons.values():
        lesson_issues = validate_lesson(lesson)
        if lesson_issues:
            issues[lesson.id] = lesson_issues
    return {"valid": not issues, "issues": issues}


# ---------------------------------------------------------------------------
# Lesson session tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def start_lesson(lesson_id: str) -> dict:
    """Start a guided lesson session.

    Args:
        lesson_id: Lesson identifier from list_lessons.

    Returns:
        Lesson state dict for the first interactive step.
    """
    try:
        lessons = _get_lessons()
    except LessonContentError as exc:
        return {"error": str(exc)}

    lesson = lessons.get(lesson_id)
    if lesson is None:
        return {"error": f"Lesson not found: {lesson_id}. Available: {sorted(lessons)}"}

    session_id = str(uuid.uuid4())
    try:
        machine = LessonStateMachine(
            lesson,
            listener=_SyncListener(session_id),
            engine=_get_engine(),
        )
    except LessonContentError as exc:
        return {"error": str(exc)}

    _sessions[session_id] = {"machine": machine, "lesson_id": lesson_id}
    await machine.start()
    return _state_response(session_id)


@mcp.tool()
def get_lesson_state(session_id: str) -> dict:
    """Get the current step of a lesson session.

    Args:
        session_id: UUID of the session.

    Returns:
        Lesson state dict.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    return minify_step_payload(_build_payload(session_id, session))


@mcp.tool()
async def attempt_move(session_id: str, move: str) -> dict:
    """Attempt the learner's move on a user-move step.

    Args:
        session_id: UUID of the session.
        move: Move in coordinate ('e2e4', 'e7e8q') or SAN ('Nf3') notation.

    Returns:
        Dict with verdict, accepted, message, san and the lesson state.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    machine: LessonStateMachine = session["machine"]
    uci = normalize_move_string(move, machine.session.position)
    if uci is None:
        return {"error": f"Cannot read move: {move}. Use coordinates like 'e2e4' or SAN like 'Nf3'."}

    descriptor = MoveDescriptor.from_uci(uci)
    outcome = await machine.attempt_move(
        descriptor.from_square, descriptor.to_square, descriptor.promotion
    )

    return {
        "verdict": outcome.verdict.value if outcome.verdict else None,
        "accepted": outcome.accepted,
        "message": outcome.message,
        "san": outcome.san,
        "state": _state_response(session_id),
    }


@mcp.tool()
async def continue_lesson(session_id: str) -> dict:
    """Continue past the current explanation step.

    Args:
        session_id: UUID of the session.

    Returns:
        Lesson state dict after advancing.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    machine: LessonStateMachine = session["machine"]
    if not await machine.advance():
        return {"error": f"Nothing to continue: lesson is {machine.state.value}"}
    return _state_response(session_id)


@mcp.tool()
async def select_choice(session_id: str, index: int) -> dict:
    """Pick an option on a choice step.

    Args:
        session_id: UUID of the session.
        index: Zero-based option index.

    Returns:
        Dict with the chosen option's explanation and the lesson state.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    machine: LessonStateMachine = session["machine"]
    try:
        choice = await machine.select_choice(index)
    except IndexError as exc:
        return {"error": str(exc)}
    if choice is None:
        return {"error": f"No choice pending: lesson is {machine.state.value}"}

    return {
        "chosen": choice.text,
        "explanation": choice.explanation,
        "state": _state_response(session_id),
    }


@mcp.tool()
async def restart_lesson(session_id: str) -> dict:
    """Restart a lesson session from its first step.

    Args:
        session_id: UUID of the session.

    Returns:
        Lesson state dict for the first interactive step.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    await session["machine"].restart()
    return _state_response(session_id)


@mcp.tool()
def get_session_summary(session_id: str) -> dict:
    """Get the performance summary for a lesson session.

    Args:
        session_id: UUID of the session.

    Returns:
        Summary dict with counts, success rate, recommended difficulty
        and feedback message.
    """
    session = _get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    machine: LessonStateMachine = session["machine"]
    summary = minify_summary(asdict(machine.summary()))
    summary["lesson_state"] = machine.state.value
    return summary


@mcp.tool()
async def end_lesson(session_id: str) -> dict:
    """Abandon a lesson session and free it.

    Args:
        session_id: UUID of the session.

    Returns:
        Confirmation dict with the final summary.
    """
    session = _sessions.pop(session_id, None)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    machine: LessonStateMachine = session["machine"]
    await machine.close()
    return {
        "message": f"Session {session_id} ended",
        "summary": minify_summary(asdict(machine.summary())),
    }


if __name__ == "__main__":
    # stdout carries the MCP stdio protocol; logs go to stderr
    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    mcp.run()
