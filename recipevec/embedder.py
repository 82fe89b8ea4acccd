from __future__ import annotations

"""
Batched corpus embedding.

The final, label-ordered record list is embedded in fixed-size batches
with a sentence-transformers encoder.  Batches run strictly one after
another; the batch size bounds peak memory rather than buying
parallelism.  Each batch is a single model call, and every row of the
result goes through :mod:`recipevec.embed_output` so that build-time
vectors and runtime query vectors share one extraction path.

A row with NaN/inf values is stored as an all-zero vector and the build
continues.  Any exception from the model call itself aborts the build.
"""

import os
from typing import Any, List, Optional, Sequence

import numpy as np
from loguru import logger
from sentence_transformers import SentenceTransformer

from .config import (
    DIM,
    EMBED_BATCH_SIZE,
    EMBED_DOC_INSTRUCTIONS_CHARS,
    EMBEDDING_MODEL,
    FALLBACK_PRECISION,
    HF_ENV_VARS,
    ONNX_QUANTIZED_FILE,
    PRIMARY_PRECISION,
    Recipe,
)
from .embed_output import embedding_row, is_finite_vector
from .errors import NonFiniteEmbedding
from .normalize import normalize_text, truncate


def _ensure_hf_env() -> None:
    """
    Ensure key HuggingFace environment variables are set, without
    overriding anything the user already exported.
    """
    for key, val in HF_ENV_VARS.items():
        os.environ.setdefault(key, val)


def load_encoder(model_id: str = EMBEDDING_MODEL, precision: str = PRIMARY_PRECISION) -> SentenceTransformer:
    """
    Load the sentence-transformers encoder at the requested precision.

    ``fp32`` is the regular torch model; ``qint8`` is the int8 quantized
    ONNX export of the same model (needs the ``onnx`` backend extras).
    """
    _ensure_hf_env()
    logger.info("Loading embedding model {} ({})", model_id, precision)
    if precision == PRIMARY_PRECISION:
        return SentenceTransformer(model_id)
    if precision == FALLBACK_PRECISION:
        return SentenceTransformer(
            model_id,
            backend="onnx",
            model_kwargs={"file_name": ONNX_QUANTIZED_FILE},
        )
    raise ValueError(f"Unknown precision {precision!r}")


def build_embed_doc(recipe: Recipe) -> str:
    """
    One embedding document per record: title, tags, ingredients and the
    first 1200 characters of the instructions, whitespace-normalized.
    """
    parts = [
        recipe.title or "",
        ", ".join(recipe.tags or []),
        recipe.ingredients or "",
        truncate(recipe.instructions, EMBED_DOC_INSTRUCTIONS_CHARS),
    ]
    return normalize_text("\n".join(parts))


def encode_batch(model: Any, docs: List[str]) -> Any:
    """Single model call for a whole batch (mean pooled, normalized)."""
    return model.encode(
        docs,
        batch_size=len(docs),
        convert_to_numpy=True,
        normalize_embeddings=True,
        show_progress_bar=False,
    )


def embed_corpus(
    recipes: Sequence[Recipe],
    model: Any,
    dim: int = DIM,
    batch_size: int = EMBED_BATCH_SIZE,
) -> np.ndarray:
    """
    Embed every record into one contiguous ``(len(recipes), dim)``
    float32 matrix indexed by label.

    Non-finite rows become zero vectors; model errors propagate.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    n = len(recipes)
    vectors = np.zeros((n, dim), dtype=np.float32)
    zeroed: List[int] = []

    for start in range(0, n, batch_size):
        batch = recipes[start : start + batch_size]
        docs = [build_embed_doc(r) for r in batch]
        logger.info("Embedding {}..{} / {}", start, min(start + batch_size, n), n)
        out = encode_batch(model, docs)

        for j, recipe in enumerate(batch):
            label = start + j
            row = embedding_row(out, j, dim)
            if not is_finite_vector(row):
                logger.warning("{}; storing zero vector", NonFiniteEmbedding(label, recipe.id))
                zeroed.append(label)
                # slot is already zero
                continue
            vectors[label] = row

    if zeroed:
        logger.warning("{} of {} records stored as zero vectors", len(zeroed), n)
    logger.info("Embedded {} records (dim={})", n, dim)
    return vectors


def load_build_encoder(model_id: Optional[str] = None) -> SentenceTransformer:
    """Build-time encoder: always the full-precision model."""
    return load_encoder(model_id or EMBEDDING_MODEL, PRIMARY_PRECISION)
