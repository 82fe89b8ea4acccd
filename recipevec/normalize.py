from __future__ import annotations

"""
Text normalization utilities used across the recipe pipeline.

These helpers collapse whitespace (including non-breaking spaces),
split ingredient blocks into short clean lines and build the
ingredient line list stored on every record.  Keeping this logic
centralized ensures adapters, the deduplicator and the embedder all see
the same text.
"""

import re
from typing import List, Optional

from .config import MAX_INGREDIENT_LINES, MIN_INGREDIENT_LINE_CHARS


# ---------------------------
# Basic helpers
# ---------------------------

# non-breaking spaces are matched explicitly
WHITESPACE_RE = re.compile(r"[\s\u00a0]+")
LINE_BREAK_RE = re.compile(r"\r?\n")
BULLET_RE = re.compile(r"^\s*[-*•]+\s*")


def normalize_text(text: Optional[str]) -> str:
    """
    Collapse all whitespace runs into a single space and strip edges.
    ``None`` and empty input yield an empty string.
    """
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    return WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: Optional[str], max_chars: int) -> str:
    if not text:
        return ""
    return text[:max_chars]


def to_lines(text: Optional[str]) -> List[str]:
    """Split on line breaks, trim each line and drop empty ones."""
    if not text:
        return []
    lines = (ln.strip() for ln in LINE_BREAK_RE.split(text))
    return [ln for ln in lines if ln]


# ---------------------------
# Ingredient lines
# ---------------------------

def normalize_ingredient_line(line: Optional[str]) -> str:
    """
    Strip a leading bullet marker (``-``, ``*``, ``•``, one or more) and
    collapse internal whitespace.
    """
    if not line:
        return ""
    return normalize_text(BULLET_RE.sub("", line))


def build_ingredients_lines(ingredients: Optional[str]) -> List[str]:
    """
    Turn a free-text ingredient block into the ordered list of short
    ingredient strings stored on a record.

    - split on line breaks, trim
    - strip bullets, collapse whitespace
    - drop lines of length <= 2
    - cap at 300 entries
    """
    cleaned = [normalize_ingredient_line(ln) for ln in to_lines(ingredients)]
    kept = [ln for ln in cleaned if len(ln) > MIN_INGREDIENT_LINE_CHARS]
    return kept[:MAX_INGREDIENT_LINES]


# ---------------------------
# Debug / CLI usage
# ---------------------------

if __name__ == "__main__":
    sample = "- Flour\n* 2 eggs\n\nSalt\n•• 1 cup   milk\nok"
    print("TEXT:", normalize_text(sample))
    print("LINES:", build_ingredients_lines(sample))
