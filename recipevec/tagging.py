from __future__ import annotations

"""
Rule-based tag inference for recipe records.

Three ordered rule tables (diet, cuisine, category) are evaluated
against a blob made from the title, ingredients and instructions.  A
small set of heuristics then adds "plant-forward", "quick" and
"high-protein".  Tags keep first-encountered order (table order, not
alphabetical) and are capped at ``MAX_TAGS``.
"""

import re
from typing import List, Optional, Pattern, Tuple

from .config import MAX_TAGS

TagRule = Tuple[str, Pattern[str]]


def _rule(tag: str, pattern: str) -> TagRule:
    return tag, re.compile(pattern, re.IGNORECASE)


DIET_TAGS: List[TagRule] = [
    _rule("vegan", r"\bvegan\b"),
    _rule("vegetarian", r"\bvegetarian\b"),
    _rule("gluten-free", r"\bgluten[- ]free\b|\bglutenfree\b"),
    _rule("dairy-free", r"\bdairy[- ]free\b"),
    _rule("nut-free", r"\bnut[- ]free\b"),
    _rule("keto", r"\bketo\b"),
    _rule("paleo", r"\bpaleo\b"),
    _rule("low-sodium", r"\blow[- ]sodium\b"),
    _rule("low-carb", r"\blow[- ]carb\b"),
]

# Whole-word matches; plurals and stems are spelled out in the pattern.
CUISINE_TAGS: List[TagRule] = [
    _rule("mexican", r"\b(tacos?|tortillas?|enchil\w*|quesad\w*|pozole|tamales?|mole|salsa|chilaqu\w*)\b"),
    _rule("italian", r"\b(pasta|risotto|pesto|parmig\w*|gnocchi|lasagna|marinara|carbonara)\b"),
    _rule("indian", r"\b(curry|masala|tandoori|naan|dal|paneer|biryani|garam)\b"),
    _rule("japanese", r"\b(ramen|miso|teriyaki|udon|soba|yakitori|onigiri|tempura|sushi)\b"),
    _rule("korean", r"\b(kimchi|gochujang|bibimbap|bulgogi|tteok)\b"),
    _rule("thai", r"\b(pad thai|tom yum|coconut milk|green curry|red curry|fish sauce|lemongrass)\b"),
    _rule("vietnamese", r"\b(pho|banh mi|nuoc mam|rice paper|vermicelli)\b"),
    _rule("chinese", r"\b(mapo|szech\w*|sichuan|kung pao|dumplings?|wontons?|lo mein|chow mein)\b"),
    _rule("middle-eastern", r"\b(hummus|tahini|shawarma|falafel|za'atar|tabbouleh)\b"),
    _rule("mediterranean", r"\b(olives|feta|tzatziki|oregano|chickpea|couscous)\b"),
]

CATEGORY_TAGS: List[TagRule] = [
    _rule("snack", r"\b(snack|granola bar|trail mix)\b"),
    _rule("breakfast", r"\b(breakfast|pancake|waffle|omelet|oatmeal|granola)\b"),
    _rule("dessert", r"\b(dessert|cake|cookie|brownie|pie|ice cream|pudding)\b"),
    _rule("soup", r"\b(soup|stew|broth|chowder)\b"),
    _rule("salad", r"\b(salad)\b"),
]

RULE_TABLES: List[List[TagRule]] = [DIET_TAGS, CUISINE_TAGS, CATEGORY_TAGS]

# Heuristics; plant-forward looks at ingredients only
PLANT_PROTEIN_RE = re.compile(r"\b(tofu|tempeh|nutritional yeast|lentil|chickpea)\b")
QUICK_RE = re.compile(r"\b(15 min|20 min|30 min|quick|easy)\b", re.IGNORECASE)
PROTEIN_RE = re.compile(
    r"\b(chicken|turkey|beef|fish|salmon|tuna|tofu|lentil|beans|egg|yogurt)\b",
    re.IGNORECASE,
)


def tag_blob(title: Optional[str], ingredients: Optional[str], instructions: Optional[str]) -> str:
    """Join the non-empty text fields with newlines."""
    return "\n".join(part for part in (title, ingredients, instructions) if part)


def infer_tags(
    title: Optional[str],
    ingredients: Optional[str],
    instructions: Optional[str],
    max_tags: int = MAX_TAGS,
) -> List[str]:
    """
    Classify a record into diet / cuisine / category labels.

    Deterministic and side-effect free; text with no keyword matches
    yields an empty list (or heuristic tags only).
    """
    blob = tag_blob(title, ingredients, instructions)
    # dict keeps insertion order and gives set semantics
    tags: dict = {}
    for table in RULE_TABLES:
        for tag, pattern in table:
            if pattern.search(blob):
                tags.setdefault(tag, None)

    if PLANT_PROTEIN_RE.search((ingredients or "").lower()):
        tags.setdefault("plant-forward", None)
    if QUICK_RE.search(blob):
        tags.setdefault("quick", None)
    if PROTEIN_RE.search(blob):
        tags.setdefault("high-protein", None)

    return list(tags)[:max_tags]


if __name__ == "__main__":
    print(infer_tags("Vegan tacos", "1 can black beans\n8 corn tortillas", "Warm and fill. Quick!"))
