"""Cleanup and classification of raw runner output."""

import re

from testpilot.models.events import LineLevel

_CSI_SEQUENCE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_ESCAPE_SEQUENCE = re.compile(r"\x1b[^\[]")

# Checked in order, first match wins
_LEVEL_PATTERNS: tuple[tuple[LineLevel, re.Pattern[str]], ...] = (
    ("success", re.compile(r"passed|✓|✔|ok\b", re.IGNORECASE)),
    ("error", re.compile(r"failed|✘|\xd7|Error|error\b", re.IGNORECASE)),
    ("warn", re.compile(r"warn|⚠", re.IGNORECASE)),
    ("info", re.compile(r"running|▶|worker", re.IGNORECASE)),
)


def strip_ansi(text: str) -> str:
    """Remove terminal color and cursor control sequences."""
    return _ESCAPE_SEQUENCE.sub("", _CSI_SEQUENCE.sub("", text))


def line_level(text: str) -> LineLevel:
    """Classify an output chunk for display."""
    for level, pattern in _LEVEL_PATTERNS:
        if pattern.search(text):
            return level
    return "normal"
