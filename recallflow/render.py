"""Terminal rendering of phrase text.

Phrases mark the sub-phrase being drilled with square brackets, e.g.
``I'm [fed up with] it``. In the terminal the marked span is underlined.
"""

import re
import sys

EMPHASIS = re.compile(r"\[(.*?)\]")
UNDERLINE = "\033[4;1m"
RESET = "\033[0m"


def split_emphasis(text: str) -> list[tuple[str, bool]]:
    """Split text into ``(segment, emphasized)`` pairs, dropping empty plain segments."""
    parts = EMPHASIS.split(text)
    return [(part, i % 2 == 1) for i, part in enumerate(parts) if part or i % 2 == 1]


def render_phrase(text: str, color: bool | None = None) -> str:
    """Render emphasis spans as underlined text (or plain text without color)."""
    if color is None:
        color = sys.stdout.isatty()
    out = []
    for segment, emphasized in split_emphasis(text):
        if emphasized and color:
            out.append(f"{UNDERLINE}{segment}{RESET}")
        else:
            out.append(segment)
    return "".join(out)


def format_duration(total_seconds: int) -> str:
    """Format seconds as ``MM:SS``, or ``H:MM:SS`` past an hour."""
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def render_card(chinese: str, english: str | None = None, note: str = "", indent: str = "  ") -> str:
    """Render a card: the prompt, and when revealed the answer and note."""
    lines = [f"{indent}{render_phrase(chinese)}"]
    if english is not None:
        if note.strip():
            lines.append(f"{indent}  note: {note.strip()}")
        lines.append(f"{indent}-> {render_phrase(english)}")
    return "\n".join(lines)
