"""Terminal lesson board for guided practice.

Renders a Rich-based chess board with the current step's guidance that
auto-updates by watching data/current_lesson.json via watchdog at ~4Hz.
Supports --sample flag for standalone testing without MCP server.
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

import chess
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DATA_DIR = _PROJECT_ROOT / "data"
_CURRENT_LESSON = _DATA_DIR / "current_lesson.json"
_SAMPLE_LESSON = _DATA_DIR / "sample_lesson.json"

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"

# Authored highlight colors -> square backgrounds
_HIGHLIGHT_COLORS = {
    "suggest": "light_sky_blue1",
    "require": "yellow",
    "good": "pale_green1",
    "avoid": "light_salmon1",
    "bad": "indian_red1",
}
_ARROW_BG = "khaki1"
_FEEDBACK_COLORS = {"correct": "green3", "incorrect": "red3"}

_STATE_LABELS = {
    "idle": "Not started",
    "awaiting-user-move": "Your move",
    "computer-thinking": "Computer thinking...",
    "showing-explanation": "Read and continue",
    "awaiting-choice": "Make a choice",
    "completed": "Lesson complete",
    "failed": "Lesson failed",
}


def _load_lesson_state(path: Path) -> dict | None:
    """Load a step payload dict from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def square_styles(state: dict) -> dict[str, str]:
    """Map square names to background colors for the current step.

    Arrow endpoints are drawn first, then authored highlights, then
    live feedback markers from the animation overlay, so later layers
    win on shared squares.
    """
    styles: dict[str, str] = {}
    for arrow in state.get("arrows", []):
        styles[arrow["from_square"]] = _ARROW_BG
        styles[arrow["to_square"]] = _ARROW_BG
    for highlight in state.get("highlights", []):
        styles[highlight["square"]] = _HIGHLIGHT_COLORS.get(highlight.get("color"), "yellow")
    for element in state.get("overlay", []):
        if element.get("kind") == "feedback":
            for square in element.get("squares", []):
                styles[square] = _FEEDBACK_COLORS.get(element.get("style"), "yellow")
    return styles


def render_lesson(state: dict) -> Layout:
    """Render the full lesson layout from a step payload dict.

    Args:
        state: Step payload dict with fen, arrows, highlights, etc.

    Returns:
        Rich Layout with board and step panel.
    """
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(_render_board_panel(state))
    layout["sidebar"].update(_render_step_panel(state))
    return layout


def _render_board_panel(state: dict) -> Panel:
    fen = state.get("fen", chess.STARTING_FEN)
    is_flipped = state.get("start_black", False)
    board = chess.Board(fen)
    styles = square_styles(state)

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))

    # Rank label + 8 squares
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)

            is_light = (rank + file) % 2 == 1
            bg = styles.get(chess.square_name(sq), _LIGHT_SQ if is_light else _DARK_SQ)

            if piece is not None:
                symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?")
                row.append(Text(f" {symbol} ", style=f"on {bg}"))
            else:
                row.append(Text("   ", style=f"on {bg}"))

        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    title = state.get("lesson_title") or state.get("lesson_id", "Guided Practice")
    return Panel(table, title=title, border_style="blue")


def _render_step_panel(state: dict) -> Panel:
    parts: list[str] = []

    total = state.get("total_steps", 0)
    index = state.get("step_index", 0)
    lesson_state = state.get("state", "idle")
    step_no = min(index + 1, total)
    parts.append(f"[bold]Step {step_no}/{total}[/bold]  {_STATE_LABELS.get(lesson_state, lesson_state)}")
    parts.append("")

    if state.get("title"):
        parts.append(f"[bold]{state['title']}[/bold]")
    if state.get("description"):
        parts.append(state["description"])
        parts.append("")

    tooltip = state.get("tooltip")
    if tooltip:
        parts.append(f"[italic]{tooltip['square']}: {tooltip['message']}[/italic]")
        parts.append("")

    for choice in state.get("choices", []):
        parts.append(f"  [{choice['index']}] {choice['text']}")
    if state.get("choices"):
        parts.append("")

    if state.get("timer_seconds"):
        parts.append(f"Auto-continue in {state['timer_seconds']:g}s")
        parts.append("")

    last = state.get("last_computer_move")
    if last:
        parts.append(f"[bold]Computer:[/bold] {last['text']}")
        if last.get("teaching_point"):
            parts.append(f"[dim]{last['teaching_point']}[/dim]")
        parts.append("")

    move_list = state.get("move_list", [])
    if move_list:
        parts.append("[bold]Moves:[/bold] " + " ".join(move_list))
        parts.append("")

    parts.append(f"Correct: {state.get('correct_moves', 0)}   Mistakes: {state.get('mistakes', 0)}")

    if state.get("failure_reason"):
        parts.append("")
        parts.append(f"[red]{state['failure_reason']}[/red]")

    return Panel("\n".join(parts), title="Lesson", border_style="green")


def _render_waiting() -> Panel:
    return Panel(
        Text("Waiting for lesson...\n\nStart a lesson via MCP server to see the board.",
             justify="center"),
        title="Guided Practice",
        border_style="dim",
    )


def _watch_loop(console: Console) -> None:
    """Watch current_lesson.json and auto-update display at ~4Hz.

    Args:
        console: Rich Console instance.
    """
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    last_state: dict | None = None
    state_changed = True

    class _Handler(FileSystemEventHandler):
        def on_modified(self, event):
            nonlocal state_changed
            if event.src_path.endswith("current_lesson.json"):
                state_changed = True

        # os.replace() shows up as a move onto the target
        def on_moved(self, event):
            nonlocal state_changed
            if event.dest_path.endswith("current_lesson.json"):
                state_changed = True

    observer = Observer()
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(_DATA_DIR), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if state_changed:
                    state = _load_lesson_state(_CURRENT_LESSON)
                    if state is not None:
                        last_state = state
                        live.update(render_lesson(state))
                    elif last_state is None:
                        live.update(_render_waiting())
                    state_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


def main() -> None:
    """CLI entry point for the lesson TUI."""
    parser = argparse.ArgumentParser(description="Guided Practice Terminal UI")
    parser.add_argument(
        "--sample", action="store_true",
        help="Render sample lesson step and exit (no watch loop)",
    )
    args = parser.parse_args()

    console = Console()

    if args.sample:
        state = _load_lesson_state(_SAMPLE_LESSON)
        if state is None:
            console.print("[red]Sample lesson file not found at data/sample_lesson.json[/red]")
            sys.exit(1)
        console.print(render_lesson(state))
        return

    _watch_loop(console)


if __name__ == "__main__":
    main()
