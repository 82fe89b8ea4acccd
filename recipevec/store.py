from __future__ import annotations

"""
Vector store writer, loader and the brute-force cosine scan.

A build produces three artifacts that share one label order:

* ``embeddings.bin`` - raw little-endian float32, ``count * dim`` values,
  row-major by label, no header.
* ``recipes.json`` - JSON array, one object per label, each carrying its
  ``label``.
* ``dataset_meta.json`` - build metadata (``buildId``, ``model``,
  ``dim``, ``count``, ``search``, ``sources``).

All three are written from the same in-memory arrays in one pass.  The
loader checks the shapes against the metadata; search is a dot product
against every stored vector, which is cosine similarity because every
non-zero vector is unit-normalized.
"""

import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import (
    ASSETS_DIR,
    DATASET_SOURCES,
    EMBEDDINGS_FILENAME,
    META_FILENAME,
    RECIPES_FILENAME,
    SEARCH_STRATEGY,
    BuildMetadata,
)
from .corpus import has_instructions, relabel_in_lockstep

VECTOR_DTYPE = np.dtype("<f4")


@dataclass
class VectorStore:
    recipes: List[Dict]
    vectors: np.ndarray
    meta: BuildMetadata

    @property
    def count(self) -> int:
        return len(self.recipes)

    @property
    def dim(self) -> int:
        return int(self.vectors.shape[1])


def new_build_id() -> str:
    return date.today().isoformat()


def build_metadata(
    model: str,
    dim: int,
    count: int,
    build_id: Optional[str] = None,
) -> BuildMetadata:
    return BuildMetadata(
        buildId=build_id or new_build_id(),
        model=model,
        dim=dim,
        count=count,
        search=SEARCH_STRATEGY,
        sources=list(DATASET_SOURCES),
    )


# -----------------------------------------------------------------------------
# Writing
# -----------------------------------------------------------------------------

def write_store(
    out_dir: Path,
    recipes: Sequence[Dict],
    vectors: np.ndarray,
    meta: BuildMetadata,
) -> Dict[str, Path]:
    """
    Write the three store artifacts from label-ordered arrays.

    ``recipes[i]["label"]`` must equal ``i`` and ``vectors`` must have one
    row per record and ``meta.dim`` columns.
    """
    vectors = np.asarray(vectors)
    if vectors.ndim != 2 or vectors.shape[0] != len(recipes) or vectors.shape[1] != meta.dim:
        raise ValueError(
            f"Cannot write store: {len(recipes)} records, vectors {vectors.shape}, dim {meta.dim}"
        )
    if meta.count != len(recipes):
        raise ValueError(f"Metadata count {meta.count} != {len(recipes)} records")
    for i, r in enumerate(recipes):
        if r.get("label") != i:
            raise ValueError(f"Record at position {i} has label {r.get('label')}")

    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "embeddings": out_dir / EMBEDDINGS_FILENAME,
        "recipes": out_dir / RECIPES_FILENAME,
        "meta": out_dir / META_FILENAME,
    }

    logger.info("Writing embeddings binary…")
    paths["embeddings"].write_bytes(
        np.ascontiguousarray(vectors, dtype=VECTOR_DTYPE).tobytes()
    )

    with paths["recipes"].open("w", encoding="utf-8") as f:
        json.dump(list(recipes), f, ensure_ascii=False, separators=(",", ":"))

    with paths["meta"].open("w", encoding="utf-8") as f:
        json.dump(meta.model_dump(), f, ensure_ascii=False, indent=2)

    logger.info(
        "Wrote store to {} (count={}, dim={}, {} bytes of vectors)",
        out_dir, meta.count, meta.dim, vectors.shape[0] * vectors.shape[1] * 4,
    )
    return paths


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

def load_store(store_dir: Path = ASSETS_DIR) -> VectorStore:
    """
    Load a store written by :func:`write_store`.

    Raises ``FileNotFoundError`` when an artifact is missing and
    ``ValueError`` when the shapes disagree with the metadata.
    """
    store_dir = Path(store_dir)
    emb_path = store_dir / EMBEDDINGS_FILENAME
    rec_path = store_dir / RECIPES_FILENAME
    meta_path = store_dir / META_FILENAME
    for p in (emb_path, rec_path, meta_path):
        if not p.exists():
            raise FileNotFoundError(f"Vector store artifact not found at {p}. Run the build first.")

    with meta_path.open("r", encoding="utf-8") as f:
        meta = BuildMetadata.model_validate(json.load(f))
    with rec_path.open("r", encoding="utf-8") as f:
        recipes = json.load(f)

    flat = np.fromfile(emb_path, dtype=VECTOR_DTYPE)
    if flat.size != meta.count * meta.dim:
        raise ValueError(
            f"{emb_path} holds {flat.size} floats, expected {meta.count} * {meta.dim}"
        )
    if len(recipes) != meta.count:
        raise ValueError(f"{rec_path} holds {len(recipes)} records, expected {meta.count}")
    vectors = flat.astype(np.float32).reshape(meta.count, meta.dim)

    logger.info("Loaded vector store {} with {} records (dim={})", meta.buildId, meta.count, meta.dim)
    return VectorStore(recipes=recipes, vectors=vectors, meta=meta)


def refilter_store(store_dir: Path = ASSETS_DIR, build_id: Optional[str] = None) -> VectorStore:
    """
    Re-apply the instructions filter to an existing store and rewrite all
    three artifacts in lockstep with fresh labels.
    """
    store = load_store(store_dir)
    keep = [has_instructions(r) for r in store.recipes]
    rows, vectors = relabel_in_lockstep(store.recipes, store.vectors, keep)
    logger.info("With instructions: {} (removed {})", len(rows), store.count - len(rows))

    meta = store.meta.model_copy(
        update={"count": len(rows), "buildId": build_id or new_build_id()}
    )
    write_store(store_dir, rows, vectors, meta)
    return VectorStore(recipes=rows, vectors=vectors, meta=meta)


# -----------------------------------------------------------------------------
# Brute-force cosine search
# -----------------------------------------------------------------------------

def cosine_top_k(query: np.ndarray, vectors: np.ndarray, k: int) -> List[Tuple[int, float]]:
    """
    Score every stored vector against ``query`` by dot product and return
    the ``k`` best ``(label, score)`` pairs, highest first, ties by label.
    """
    if vectors.shape[0] == 0 or k <= 0:
        return []
    q = np.asarray(query, dtype=np.float32).ravel()
    if q.size != vectors.shape[1]:
        raise ValueError(f"Query has {q.size} dims, store has {vectors.shape[1]}")
    scores = vectors @ q
    # stable sort on -score keeps lower labels first among equal scores
    order = np.argsort(-scores, kind="stable")[:k]
    return [(int(i), float(scores[i])) for i in order]


def search(store: VectorStore, query: np.ndarray, k: int) -> List[Tuple[Dict, float]]:
    return [(store.recipes[i], s) for i, s in cosine_top_k(query, store.vectors, k)]
