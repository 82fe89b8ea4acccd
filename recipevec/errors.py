from __future__ import annotations

"""
Error taxonomy for the build pipeline and the query embedding service.

Build-time errors are fatal and abort the build, with the exception of
``NonFiniteEmbedding`` which is recorded as a zero vector and logged.
Runtime errors are reported back to the caller paired with the request id.
"""

from typing import Optional, Sequence


class RecipeVecError(RuntimeError):
    """Base class for every error raised by this package."""


class FetchError(RecipeVecError):
    """Network or HTTP failure while downloading a raw dataset."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        detail = f"HTTP {status}" if status is not None else (reason or "transport error")
        super().__init__(f"Fetch failed: {url} ({detail})")


class ParseError(RecipeVecError):
    """A payload was neither a JSON document nor newline-delimited JSON."""

    def __init__(self, source: str):
        self.source = source
        super().__init__(f"Could not parse {source} as JSON or NDJSON.")


class UnexpectedOutputShape(RecipeVecError):
    """An embedding result could not be mapped onto a ``dim``-length vector."""

    def __init__(
        self,
        length: Optional[int] = None,
        dims: Optional[Sequence[int]] = None,
        row: Optional[int] = None,
        kind: str = "",
    ):
        self.length = length
        self.dims = tuple(dims) if dims is not None else None
        self.row = row
        where = f" for row {row}" if row is not None else ""
        what = f" type={kind}" if kind else ""
        super().__init__(
            f"Unexpected embedding output shape{where}. "
            f"length={length}, dims={self.dims}{what}"
        )


class ModelLoadError(RecipeVecError):
    """The embedding model could not be loaded at any configured precision."""

    def __init__(self, model_id: str, precisions: Sequence[str], cause: BaseException):
        self.model_id = model_id
        self.precisions = list(precisions)
        self.cause = cause
        super().__init__(
            f"Could not load {model_id} (tried {', '.join(self.precisions)}): {cause}"
        )


class NonFiniteEmbedding(RecipeVecError):
    """
    A single record's embedding contained NaN or infinite values.

    Never raised: the build stores a zero vector for the record and logs
    an instance of this class as the warning message.
    """

    def __init__(self, label: int, record_id: str = ""):
        self.label = label
        self.record_id = record_id
        super().__init__(f"Non-finite embedding for label {label} ({record_id})")
