from __future__ import annotations

"""
End-to-end vector store build.

Steps:

1) Download and parse every source (concurrently).
2) Merge in source-priority order and de-duplicate.
3) Keep only records with non-trivial instructions.
4) Embed the remaining records batch by batch.
5) Write ``embeddings.bin``, ``recipes.json`` and ``dataset_meta.json``.

Nothing is written until step 4 has finished, so a failed build never
leaves artifacts that look complete.  Each stage raises with the stage
name attached via :class:`BuildError`.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx
from loguru import logger

from .config import ASSETS_DIR, DIM, EMBED_BATCH_SIZE, EMBEDDING_MODEL, Recipe
from .corpus import assign_labels, filter_with_instructions, merge_sources
from .datasets import SourceKind, load_all_sources
from .embedder import embed_corpus, load_build_encoder
from .errors import RecipeVecError
from .store import build_metadata, write_store


class BuildError(RecipeVecError):
    """Wraps a fatal error with the pipeline stage it came from."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")


def build_corpus(per_source: List[List[Recipe]]) -> List[Recipe]:
    merged = merge_sources(per_source)
    logger.info("Merged recipes (before filter): {}", len(merged))
    return filter_with_instructions(merged)


def build_store(
    out_dir: Path = ASSETS_DIR,
    limits: Optional[Mapping[SourceKind, int]] = None,
    batch_size: int = EMBED_BATCH_SIZE,
    model_id: str = EMBEDDING_MODEL,
    dim: int = DIM,
    encoder_factory: Optional[Callable[[str], Any]] = None,
    client: Optional[httpx.Client] = None,
    build_id: Optional[str] = None,
) -> Dict[str, Path]:
    """
    Run the whole pipeline and return the paths of the written artifacts.

    ``encoder_factory`` receives the model id and returns an object with a
    sentence-transformers style ``encode``; the default loads the real
    full-precision model.
    """
    try:
        per_source = load_all_sources(limits, client=client)
    except Exception as e:
        raise BuildError("fetch/parse", e) from e

    try:
        recipes = build_corpus(per_source)
    except Exception as e:
        raise BuildError("corpus", e) from e

    try:
        factory = encoder_factory or load_build_encoder
        model = factory(model_id)
    except Exception as e:
        raise BuildError("model load", e) from e

    try:
        vectors = embed_corpus(recipes, model, dim=dim, batch_size=batch_size)
    except Exception as e:
        raise BuildError("embedding", e) from e

    rows = assign_labels(recipes)
    meta = build_metadata(model=model_id, dim=dim, count=len(rows), build_id=build_id)
    try:
        paths = write_store(out_dir, rows, vectors, meta)
    except Exception as e:
        raise BuildError("write", e) from e
    logger.info("Build {} complete: {} recipes", meta.buildId, meta.count)
    return paths


if __name__ == "__main__":
    # python -m recipevec.build
    build_store()
