"""
Pytest configuration and shared fixtures.

Everything here is offline: dataset downloads go through
``httpx.MockTransport`` and the embedding model is a small deterministic
fake, so no network access or model download is needed.
"""

import gzip
import json
from typing import Dict, List

import httpx
import numpy as np
import pytest

from recipevec.config import OPEN_RECIPES_URL, WIKIBOOKS_JSON_URL, Recipe
from recipevec.query_service import DEFAULT_MODEL_CACHE

TEST_DIM = 8


class FakeEncoder:
    """
    Sentence-transformers stand-in.

    Each document maps to a deterministic unit vector.  Documents
    containing ``POISON`` come back as NaN rows.  ``calls`` records the
    batch sizes it was invoked with.
    """

    def __init__(self, dim: int = TEST_DIM, per_token: bool = False):
        self.dim = dim
        self.per_token = per_token
        self.calls: List[int] = []

    def _vector(self, doc: str) -> np.ndarray:
        if "POISON" in doc:
            return np.full(self.dim, np.nan, dtype=np.float32)
        rng = np.random.default_rng(sum(doc.encode("utf-8")) + len(doc))
        v = rng.normal(size=self.dim).astype(np.float32)
        return v / np.linalg.norm(v)

    def encode(self, docs, **kwargs):
        single = isinstance(docs, str)
        batch = [docs] if single else list(docs)
        self.calls.append(len(batch))
        rows = np.stack([self._vector(d) for d in batch])
        if self.per_token:
            # three identical "tokens" per input, un-normalized
            rows = np.repeat(rows[:, None, :] * 2.0, 3, axis=1)
        return rows[0] if single else rows


def make_recipe(
    idx: int = 0,
    title: str = "Pancakes",
    ingredients: str = "2 eggs\n1 cup flour",
    instructions: str = "Whisk everything and fry in a hot pan.",
    source: str = "openrecipes",
    tags=None,
) -> Recipe:
    from recipevec.normalize import build_ingredients_lines, normalize_text

    return Recipe(
        id=f"{source}_{idx}",
        source=source,
        title=title,
        url=f"https://example.com/{idx}",
        ingredients=normalize_text(ingredients),
        ingredients_lines=build_ingredients_lines(ingredients),
        instructions=instructions,
        tags=list(tags or []),
    )


OPEN_RECIPES_ROWS: List[Dict] = [
    {
        "name": "Vegan Tacos",
        "url": "https://example.com/tacos",
        "ingredients": "1 can black beans\n8 corn tortillas\n- salsa",
        "instructions": "Warm the tortillas, fill with beans and salsa.",
    },
    {
        "name": "Plain Toast",
        "url": "https://example.com/toast",
        "ingredients": ["2 slices bread", "butter"],
        "instructions": "Toast.",
    },
    {
        "name": "Chicken Soup",
        "url": "https://example.com/soup",
        "ingredients": "1 whole chicken\n2 carrots",
        "instructions": "Simmer the chicken with carrots for two hours.",
    },
]

WIKIBOOKS_ROWS: List[Dict] = [
    {
        "recipe_data": {
            "title": "Hummus",
            "url": "https://en.wikibooks.org/wiki/Cookbook:Hummus",
            "text_lines": [
                {"section": "Ingredients", "text": "* 1 can chickpeas"},
                {"section": "Ingredients", "text": "* 2 tbsp tahini"},
                {"section": "Procedure", "text": "Blend everything until smooth."},
            ],
        }
    },
    {
        # same identity key as the Open Recipes soup: dropped by dedupe
        "recipe_data": {
            "title": "Chicken Soup",
            "url": "https://en.wikibooks.org/wiki/Cookbook:Chicken_Soup",
            "text_lines": [
                {"section": "Ingredients", "text": "1 whole chicken"},
                {"section": "Directions", "text": "Simmer for a long time in a big pot."},
            ],
        }
    },
]


def ndjson_gz(rows: List[Dict]) -> bytes:
    return gzip.compress("\n".join(json.dumps(r) for r in rows).encode("utf-8"))


@pytest.fixture(autouse=True)
def clear_model_cache():
    DEFAULT_MODEL_CACHE.clear()
    yield
    DEFAULT_MODEL_CACHE.clear()


@pytest.fixture
def fake_encoder():
    return FakeEncoder()


@pytest.fixture
def dataset_client():
    """httpx client that serves both datasets from memory."""
    payloads = {
        OPEN_RECIPES_URL: ndjson_gz(OPEN_RECIPES_ROWS),
        WIKIBOOKS_JSON_URL: json.dumps(WIKIBOOKS_ROWS).encode("utf-8"),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        body = payloads.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        yield client
