"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_lesson.json (TUI sync) is NOT affected, only MCP return values.

PGN string format for move_list uses standard chess notation
(1.e4 e5 2.Nf3 ...) which is natural for the LLM agent to read.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_step_payload(payload: dict) -> dict:
    """Minify a StepPayload dict for MCP response.

    Drops renderer-only fields (overlay elements, arrow styles, highlight
    animations), compacts move_list to a PGN string and keeps only the
    computer move's explanation text.

    Args:
        payload: Full StepPayload dict (from dataclasses.asdict).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    # Keep core fields as-is
    for key in (
        "session_id", "lesson_id", "state", "step_index", "total_steps",
        "step_id", "step_kind", "title", "description", "fen",
        "interaction_enabled", "correct_moves", "mistakes",
    ):
        if key in payload:
            result[key] = payload[key]

    # Arrows: dicts -> "e2e4" strings
    arrows = payload.get("arrows", [])
    result["arrows"] = [f"{a['from_square']}{a['to_square']}" for a in arrows]

    # Highlights: dicts -> square names
    highlights = payload.get("highlights", [])
    result["highlights"] = [h["square"] for h in highlights]

    tooltip = payload.get("tooltip")
    result["hint"] = tooltip.get("message") if isinstance(tooltip, dict) else None

    choices = payload.get("choices", [])
    if choices:
        result["choices"] = [f"{c['index']}: {c['text']}" for c in choices]

    # Only include optional fields when set
    if payload.get("timer_seconds") is not None:
        result["timer_seconds"] = payload["timer_seconds"]
    if payload.get("failure_reason"):
        result["failure_reason"] = payload["failure_reason"]

    last = payload.get("last_computer_move")
    if isinstance(last, dict):
        result["computer_move"] = {"san": last.get("san"), "text": last.get("text")}

    move_list = payload.get("move_list", [])
    if isinstance(move_list, list):
        result["move_list"] = _moves_to_pgn_string(move_list, payload.get("start_black", False))
    else:
        result["move_list"] = move_list

    # Removed fields: overlay, move arrow colors/styles, highlight animations

    return result


def minify_summary(summary: dict) -> dict:
    """Minify a SessionSummary dict for MCP response.

    Rounds the success rate to a percentage and drops zero-value
    think-time noise.

    Args:
        summary: Full SessionSummary dict (from dataclasses.asdict).

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "correct_moves", "mistakes", "recommended_next_difficulty",
        "feedback_message", "passed",
    ):
        if key in summary:
            result[key] = summary[key]

    rate = summary.get("success_rate", 0.0)
    result["success_pct"] = round(rate * 100, 1)

    if summary.get("average_think_time"):
        result["avg_think_s"] = round(summary["average_think_time"], 1)
    if summary.get("time_bonus"):
        result["time_bonus"] = True

    return result


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str], start_black: bool = False) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'.
    Lessons starting with Black to move get a '1...' prefix.

    Args:
        moves: List of SAN move strings.
        start_black: Whether the first move is Black's.

    Returns:
        PGN-formatted move string.
    """
    if not moves:
        return ""

    offset = 1 if start_black else 0
    parts = []
    for i, move in enumerate(moves):
        ply = i + offset
        if ply % 2 == 0:
            # White moves get the move number
            parts.append(f"{ply // 2 + 1}.{move}")
        elif i == 0:
            parts.append(f"{ply // 2 + 1}...{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

LESSON_STATE_SCHEMA = {
    "lesson_id": str,
    "state": str,
    "step_index": int,
    "total_steps": int,
    "step_id": (str, type(None)),
    "step_kind": (str, type(None)),
    "fen": str,
    "interaction_enabled": bool,
    "correct_moves": int,
    "mistakes": int,
    "arrows": list,
    "highlights": list,
    "hint": (str, type(None)),
    "move_list": str,
}

SUMMARY_SCHEMA = {
    "correct_moves": int,
    "mistakes": int,
    "success_pct": (int, float),
    "recommended_next_difficulty": int,
    "feedback_message": str,
    "passed": bool,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when GUIDED_PRACTICE_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("GUIDED_PRACTICE_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
