from __future__ import annotations

"""
Shape-robust extraction of embedding vectors from model output.

Depending on backend and call style an encoder returns an already pooled
``(dim,)`` / ``(batch, dim)`` array, an un-pooled per-token
``(tokens, dim)`` / ``(batch, tokens, dim)`` array, a torch-like tensor
exposing ``tolist()``, a nested Python list, or a list with one array per
input.  Everything here reduces such output to float32 vectors of length
``dim``.

The offline batch embedder and the runtime query service both go
through :func:`pool_buffer`; if they diverged the stored vectors and the
query vectors would no longer live in the same space.

Shape inference is best effort: a flat buffer longer than
``dim * POOLING_RATIO`` is assumed to be per-token output and is mean
pooled and re-normalized here.  That threshold is a heuristic observed
in practice, not a guarantee of any backend.
"""

import numbers
from typing import Any, List, Optional, Tuple

import numpy as np

from .config import POOLING_RATIO
from .errors import UnexpectedOutputShape


# -----------------------------------------------------------------------------
# Flattening
# -----------------------------------------------------------------------------

def _declared_dims(out: Any) -> Optional[Tuple[int, ...]]:
    shape = getattr(out, "shape", None)
    if shape is None:
        shape = getattr(out, "dims", None)
    if shape is None:
        return None
    try:
        return tuple(int(d) for d in shape)
    except (TypeError, ValueError):
        return None


def _flatten_nested(value: Any, acc: List[float]) -> None:
    if isinstance(value, (list, tuple)):
        for v in value:
            _flatten_nested(v, acc)
    elif isinstance(value, np.ndarray):
        acc.extend(value.ravel().tolist())
    elif isinstance(value, numbers.Real) and not isinstance(value, bool):
        acc.append(float(value))
    elif callable(getattr(value, "tolist", None)):
        _flatten_nested(value.tolist(), acc)
    else:
        raise TypeError(f"non-numeric element of type {type(value).__name__}")


def _as_array(out: Any) -> np.ndarray:
    """Convert any recognised output to a float32 ndarray, keeping its shape."""
    if isinstance(out, np.ndarray):
        return out.astype(np.float32, copy=False)
    if isinstance(out, memoryview):
        return np.asarray(out, dtype=np.float32)
    if callable(getattr(out, "tolist", None)):
        # torch / tf tensors, array.array
        return np.asarray(out.tolist(), dtype=np.float32)
    if isinstance(out, (list, tuple)):
        return np.asarray(out, dtype=np.float32)
    raise TypeError(f"unsupported output type {type(out).__name__}")


def flatten_output(out: Any) -> np.ndarray:
    """
    Flatten an inference result fully into one 1-D float32 buffer.

    Raises ``UnexpectedOutputShape`` for anything that is not a numeric
    array, tensor or (possibly ragged) nested sequence of numbers.
    """
    if out is None:
        raise UnexpectedOutputShape(kind="NoneType")
    try:
        if isinstance(out, (list, tuple)):
            acc: List[float] = []
            _flatten_nested(out, acc)
            return np.asarray(acc, dtype=np.float32)
        return _as_array(out).ravel()
    except (TypeError, ValueError) as e:
        raise UnexpectedOutputShape(dims=_declared_dims(out), kind=type(out).__name__) from e


# -----------------------------------------------------------------------------
# Pooling
# -----------------------------------------------------------------------------

def l2_normalize(vec: np.ndarray) -> np.ndarray:
    """Scale to unit Euclidean norm; a zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        norm = 1.0
    return (vec / norm).astype(np.float32)


def pool_buffer(buf: np.ndarray, dim: int, ratio: float = POOLING_RATIO) -> np.ndarray:
    """
    Reduce a flat buffer to one ``dim``-length vector.

    * ``len(buf) > dim * ratio``: treat as ``tokens = round(len / dim)``
      concatenated per-token vectors, mean pool column-wise and
      re-normalize to unit norm.
    * ``len(buf) == dim``: already pooled, returned unchanged.
    * any other length raises ``UnexpectedOutputShape``.
    """
    buf = np.asarray(buf, dtype=np.float32).ravel()
    n = buf.size
    if n > dim * ratio:
        tokens = int(round(n / dim))
        if tokens * dim > n:
            raise UnexpectedOutputShape(length=n, dims=(tokens, dim))
        rows = buf[: tokens * dim].reshape(tokens, dim).astype(np.float64)
        return l2_normalize(rows.mean(axis=0))
    if n != dim:
        raise UnexpectedOutputShape(length=n, dims=(dim,))
    return buf.copy()


def extract_vector(out: Any, dim: int, ratio: float = POOLING_RATIO) -> np.ndarray:
    """Single-input path: flatten whatever came back and pool it."""
    return pool_buffer(flatten_output(out), dim, ratio=ratio)


def embedding_row(out: Any, j: int, dim: int, ratio: float = POOLING_RATIO) -> np.ndarray:
    """
    Extract the vector for row ``j`` of a batched inference result.

    Supported layouts:

    * ``(batch, dim)`` array/tensor - row ``j``
    * ``(batch, tokens, dim)`` array/tensor - row ``j`` mean pooled
    * flat ``(batch * dim,)`` buffer - slice ``[j*dim, (j+1)*dim)``
    * list with one output per input - ``extract_vector(out[j])``
    """
    if isinstance(out, (list, tuple)) and out and not isinstance(out[0], numbers.Real):
        if j >= len(out):
            raise UnexpectedOutputShape(length=len(out), row=j, kind="list")
        try:
            return extract_vector(out[j], dim, ratio=ratio)
        except UnexpectedOutputShape as e:
            raise UnexpectedOutputShape(length=e.length, dims=e.dims, row=j, kind="list") from e

    try:
        arr = _as_array(out)
    except (TypeError, ValueError) as e:
        raise UnexpectedOutputShape(dims=_declared_dims(out), row=j, kind=type(out).__name__) from e

    if arr.ndim == 2 and arr.shape[0] > j and arr.shape[1] == dim:
        return arr[j].copy()
    if arr.ndim == 3 and arr.shape[0] > j and arr.shape[2] == dim:
        return pool_buffer(arr[j], dim, ratio=ratio)
    if arr.ndim == 1 and arr.size >= (j + 1) * dim:
        return arr[j * dim : (j + 1) * dim].copy()
    raise UnexpectedOutputShape(length=int(arr.size), dims=arr.shape, row=j, kind=type(out).__name__)


def is_finite_vector(vec: np.ndarray) -> bool:
    return bool(np.isfinite(vec).all())
