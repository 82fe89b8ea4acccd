from __future__ import annotations

"""
Corpus assembly: merge adapter outputs, drop duplicates, keep only
records with real instructions and assign dense labels.

Labels are the row positions of the final corpus and the only join key
between ``recipes.json`` and ``embeddings.bin``.  Any step that drops
records after labelling must rewrite both arrays together, which is what
:func:`relabel_in_lockstep` does.
"""

from itertools import chain
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import DEDUPE_KEY_CHARS, MIN_INSTRUCTIONS_CHARS, Recipe


# Field order of a persisted record
RECORD_FIELDS = [
    "id",
    "source",
    "title",
    "url",
    "tags",
    "ingredients",
    "ingredients_lines",
    "instructions",
]


def dedupe_key(recipe: Recipe) -> str:
    """
    Corpus identity key: lowercased title and first ingredient line,
    truncated.  Only used during de-duplication.
    """
    title = (recipe.title or "").lower()
    first = (recipe.ingredients_lines[0] if recipe.ingredients_lines else "").lower()
    return f"{title}|{first}"[:DEDUPE_KEY_CHARS]


def deduplicate(recipes: Iterable[Recipe]) -> List[Recipe]:
    """
    Keep the first occurrence of every identity key.  Input order is the
    source priority order, so earlier sources win ties.
    """
    seen = set()
    kept: List[Recipe] = []
    total = 0
    for r in recipes:
        total += 1
        key = dedupe_key(r)
        if key in seen:
            continue
        seen.add(key)
        kept.append(r)
    logger.info("De-duplicated {} records to {} (dropped {})", total, len(kept), total - len(kept))
    return kept


def merge_sources(per_source: Sequence[Sequence[Recipe]]) -> List[Recipe]:
    """Concatenate per-source record lists (priority order) and de-duplicate."""
    return deduplicate(chain.from_iterable(per_source))


def has_instructions(recipe) -> bool:
    """True when the trimmed instructions are longer than the minimum."""
    if isinstance(recipe, Recipe):
        text = recipe.instructions
    else:
        text = recipe.get("instructions")
    return bool(text) and len(text.strip()) > MIN_INSTRUCTIONS_CHARS


def filter_with_instructions(recipes: Iterable[Recipe]) -> List[Recipe]:
    recipes = list(recipes)
    kept = [r for r in recipes if has_instructions(r)]
    logger.info(
        "With instructions: {} (removed {})", len(kept), len(recipes) - len(kept)
    )
    return kept


def assign_labels(recipes: Sequence[Recipe]) -> List[Dict]:
    """Serialise records in final order, each carrying ``label == index``."""
    out: List[Dict] = []
    for label, r in enumerate(recipes):
        data = r.model_dump()
        row = {"label": label}
        row.update({k: data[k] for k in RECORD_FIELDS})
        out.append(row)
    return out


def relabel_in_lockstep(
    rows: Sequence[Dict],
    vectors: np.ndarray,
    keep: Sequence[bool],
) -> Tuple[List[Dict], np.ndarray]:
    """
    Drop rows where ``keep`` is false from both the record list and the
    vector matrix, and recompute labels so ``label == index`` again.
    """
    if len(rows) != vectors.shape[0] or len(rows) != len(keep):
        raise ValueError(
            f"Misaligned store: {len(rows)} records, {vectors.shape[0]} vectors, {len(keep)} flags"
        )
    mask = np.asarray(keep, dtype=bool)
    kept_rows: List[Dict] = []
    for row, flag in zip(rows, mask):
        if flag:
            kept_rows.append({**row, "label": len(kept_rows)})
    kept_vectors = np.ascontiguousarray(vectors[mask], dtype=np.float32)
    return kept_rows, kept_vectors
