#!/usr/bin/env python3
"""Load and validate guided practice lesson content.

Lessons are authored as JSON objects keyed by lesson id, using the
camelCase field names of the lesson library (stepType, allowedMoves,
computerMove, timeLimit, moveArrows, highlightSquares, ...).

Validation flags authoring mistakes before a learner ever hits them:
unknown choice targets, duplicate step ids, out-of-range bot levels,
and scripted moves that don't play along the lesson's main line.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from guided_practice.arbitrator import normalize_move_string
from guided_practice.errors import IllegalMove, LessonContentError, UnresolvableMove
from guided_practice.models import (
    Choice,
    ChoiceStep,
    ComputerMoveStep,
    ExplanationStep,
    Guidance,
    LessonDefinition,
    MoveArrow,
    ScoringThresholds,
    SquareHighlight,
    Step,
    StepKind,
    SuccessCriteria,
    Tooltip,
    UserMoveStep,
)
from guided_practice.resolver import ComputerMoveResolver
from guided_practice.rules import MoveDescriptor, RulesAdapter

DEFAULT_LESSONS_PATH = Path(__file__).resolve().parent.parent / "data" / "lessons.json"

MIN_BOT_LEVEL = 1
MAX_BOT_LEVEL = 10


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _guidance(data: dict) -> Guidance:
    arrows = tuple(
        MoveArrow(a["from"], a["to"], a.get("color", "green"), a.get("style", "solid"))
        for a in data.get("moveArrows", [])
    )
    highlights = tuple(
        SquareHighlight(h["square"], h.get("color", "suggest"), h.get("animation", "none"))
        for h in data.get("highlightSquares", [])
    )
    tooltip = None
    if data.get("tooltip"):
        t = data["tooltip"]
        tooltip = Tooltip(t["square"], t["message"], t.get("type", "hint"))
    return Guidance(arrows=arrows, highlights=highlights, tooltip=tooltip)


def _step_from_dict(data: dict, lesson_id: str) -> Step:
    """Build one step from its authored dict.

    Raises:
        LessonContentError: If the step has no id, an unknown stepType,
            or malformed guidance.
    """
    step_id = data.get("id")
    if not step_id:
        raise LessonContentError(f"{lesson_id}: step without an id")

    try:
        kind = StepKind(data.get("stepType"))
    except ValueError:
        raise LessonContentError(
            f"{lesson_id}/{step_id}: unknown stepType {data.get('stepType')!r}"
        ) from None

    try:
        common = {
            "id": step_id,
            "title": data.get("title", ""),
            "description": data.get("description", ""),
            "guidance": _guidance(data),
        }
    except (KeyError, TypeError) as exc:
        raise LessonContentError(f"{lesson_id}/{step_id}: malformed guidance: {exc}") from exc

    time_limit = data.get("timeLimit")

    if kind is StepKind.USER_MOVE:
        return UserMoveStep(
            **common,
            allowed_moves=tuple(data.get("allowedMoves", [])),
            forbidden_moves=tuple(data.get("forbiddenMoves", [])),
            suggested_move=data.get("suggestedMove"),
        )
    if kind is StepKind.COMPUTER_MOVE:
        # Authored time limits on computer steps are ignored
        return ComputerMoveStep(
            **common,
            computer_move=data.get("computerMove"),
            bot_level=data.get("botLevel"),
        )
    if kind is StepKind.EXPLANATION:
        return ExplanationStep(**common, time_limit_seconds=time_limit)

    try:
        choices = tuple(
            Choice(c["text"], c["nextStep"], c.get("explanation", ""))
            for c in data.get("choices", [])
        )
    except (KeyError, TypeError) as exc:
        raise LessonContentError(f"{lesson_id}/{step_id}: malformed choice: {exc}") from exc
    return ChoiceStep(**common, choices=choices, time_limit_seconds=time_limit)


def lesson_from_dict(lesson_id: str, data: dict) -> LessonDefinition:
    """Build a LessonDefinition from authored content.

    Args:
        lesson_id: Lesson identifier (the key in the lesson library).
        data: Authored lesson dict.

    Returns:
        The parsed lesson.

    Raises:
        LessonContentError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise LessonContentError(f"{lesson_id}: expected a JSON object")
    if "initialFen" not in data:
        raise LessonContentError(f"{lesson_id}: missing field 'initialFen'")

    criteria_data = data.get("successCriteria", {})
    criteria = SuccessCriteria(
        min_correct_moves=criteria_data.get("minCorrectMoves", 1),
        max_mistakes=criteria_data.get("maxMistakes", 3),
        time_bonus=bool(criteria_data.get("timeBonus", False)),
    )

    scoring_data = data.get("scoring", {})
    defaults = ScoringThresholds()
    scoring = ScoringThresholds(
        raise_above=scoring_data.get("raiseAbove", defaults.raise_above),
        lower_below=scoring_data.get("lowerBelow", defaults.lower_below),
        min_level=scoring_data.get("minLevel", defaults.min_level),
        max_level=scoring_data.get("maxLevel", defaults.max_level),
    )

    steps = tuple(_step_from_dict(s, lesson_id) for s in data.get("steps", []))

    return LessonDefinition(
        id=lesson_id,
        initial_fen=data["initialFen"],
        steps=steps,
        title=data.get("title", ""),
        theme=data.get("theme", ""),
        bot_level=data.get("botLevel", 3),
        objectives=tuple(data.get("objectives", [])),
        success_criteria=criteria,
        scoring=scoring,
    )


def load_lessons(path: Path | None = None) -> dict[str, LessonDefinition]:
    """Load every lesson from a lesson library file.

    Args:
        path: JSON file mapping lesson id to lesson. Defaults to the
            bundled data/lessons.json.

    Raises:
        LessonContentError: If the file is unreadable or malformed.
    """
    path = Path(path) if path is not None else DEFAULT_LESSONS_PATH
    try:
        with open(path) as f:
            library = json.load(f)
    except (json.JSONDecodeError, OSError) as exc:
        raise LessonContentError(f"{path.name}: failed to load: {exc}") from exc

    if not isinstance(library, dict):
        raise LessonContentError(f"{path.name}: expected a JSON object keyed by lesson id")

    return {lesson_id: lesson_from_dict(lesson_id, data) for lesson_id, data in library.items()}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_lesson(
    lesson: LessonDefinition,
    rules: RulesAdapter | None = None,
    resolver: ComputerMoveResolver | None = None,
) -> list[str]:
    """Check a lesson for authoring mistakes. Returns list of issues."""
    rules = rules or RulesAdapter()
    resolver = resolver or ComputerMoveResolver(rules)
    issues = []
    prefix = lesson.id

    step_ids = [s.id for s in lesson.steps]
    seen = set()
    for step_id in step_ids:
        if step_id in seen:
            issues.append(f"{prefix}: duplicate step id '{step_id}'")
        seen.add(step_id)

    if not MIN_BOT_LEVEL <= lesson.bot_level <= MAX_BOT_LEVEL:
        issues.append(f"{prefix}: bot level {lesson.bot_level} outside {MIN_BOT_LEVEL}-{MAX_BOT_LEVEL}")

    for step in lesson.steps:
        where = f"{prefix}/{step.id}"
        if isinstance(step, UserMoveStep) and not step.allowed_moves:
            issues.append(f"{where}: user-move step has no allowed moves")
        elif isinstance(step, ComputerMoveStep):
            if not step.computer_move and step.bot_level is None:
                issues.append(f"{where}: computer-move step has neither a move nor a bot level")
            if step.bot_level is not None and not MIN_BOT_LEVEL <= step.bot_level <= MAX_BOT_LEVEL:
                issues.append(f"{where}: bot level {step.bot_level} outside {MIN_BOT_LEVEL}-{MAX_BOT_LEVEL}")
        elif isinstance(step, ChoiceStep):
            if not step.choices:
                issues.append(f"{where}: choice step has no choices")
            for choice in step.choices:
                if choice.next_step_id not in seen:
                    issues.append(f"{where}: choice '{choice.text}' targets unknown step '{choice.next_step_id}'")

    try:
        position = rules.parse(lesson.initial_fen)
    except LessonContentError as exc:
        issues.append(f"{prefix}: {exc}")
        return issues

    # Play the main line up to the first branch
    for step in lesson.steps:
        where = f"{prefix}/{step.id}"
        if isinstance(step, ChoiceStep):
            break

        if isinstance(step, UserMoveStep):
            if not step.allowed_moves:
                break
            authored = step.suggested_move or step.allowed_moves[0]
            uci = normalize_move_string(authored, position)
            if uci is None:
                issues.append(f"{where}: cannot read move '{authored}' (FEN: {position.fen})")
                break
            try:
                position, _ = rules.apply_move(position, MoveDescriptor.from_uci(uci))
            except (IllegalMove, ValueError):
                issues.append(f"{where}: illegal move '{authored}' (FEN: {position.fen})")
                break

        elif isinstance(step, ComputerMoveStep):
            if not step.computer_move:
                break
            try:
                position = resolver.resolve(step.computer_move, position).position
            except UnresolvableMove:
                issues.append(f"{where}: unresolvable computer move '{step.computer_move}' (FEN: {position.fen})")
                break

    return issues


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate guided practice lesson content")
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=DEFAULT_LESSONS_PATH,
        help="Lesson library JSON (default: data/lessons.json)",
    )
    args = parser.parse_args()

    try:
        lessons = load_lessons(args.path)
    except LessonContentError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    all_issues = []
    for lesson in lessons.values():
        issues = validate_lesson(lesson)
        status = "PASS" if not issues else "FAIL"
        print(f"  {status}: {lesson.id} ({lesson.total_steps} steps)")
        all_issues.extend(issues)

    if all_issues:
        print(f"\n{len(all_issues)} issue(s):")
        for issue in all_issues:
            print(f"  - {issue}")
        return 1

    print(f"\nAll {len(lessons)} lessons valid!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
