from __future__ import annotations

"""
Runtime query embedding service.

One embedding model per process, loaded lazily on the first request.
The load is single-flight: while it is in progress every other caller
attaches to the same :class:`concurrent.futures.Future` instead of
starting its own load.  State lives in one lock-guarded cell::

    UNLOADED -> LOADING -> READY
                       \\-> FAILED -> (next request) LOADING ...

A load first tries the primary precision and, if that raises, retries
once with the more quantized precision.  If both fail the service moves
to FAILED and the waiters get a ``ModelLoadError`` chained to the first
error.  FAILED is not terminal: the next request starts a fresh load,
since transient failures fetching model files are common.

The load runs on a background thread, so a caller can bound its wait with
``timeout``; on timeout the load keeps going and still resolves the
shared future for later callers.  Once READY, embed calls do not take the
lock.
"""

import enum
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .config import DIM, EMBEDDING_MODEL, MODEL_PRECISIONS, EmbedRequest, EmbedResponse
from .embed_output import extract_vector
from .errors import ModelLoadError

Loader = Callable[[str, str], Any]


class ServiceState(str, enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ModelCache:
    """
    Process-wide cache of loaded models keyed by ``(model_id, precision)``.
    """

    def __init__(self) -> None:
        self._models: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    def get(self, model_id: str, precision: str) -> Optional[Any]:
        with self._lock:
            return self._models.get((model_id, precision))

    def put(self, model_id: str, precision: str, model: Any) -> None:
        with self._lock:
            self._models[(model_id, precision)] = model

    def clear(self) -> None:
        with self._lock:
            self._models.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._models)


# shared by every service that is not handed its own cache
DEFAULT_MODEL_CACHE = ModelCache()


def _default_loader(model_id: str, precision: str) -> Any:
    # heavy import kept out of module import time
    from .embedder import load_encoder

    return load_encoder(model_id, precision)


class QueryEmbeddingService:
    """Lazily loaded, single-flight query embedder."""

    def __init__(
        self,
        loader: Optional[Loader] = None,
        model_id: str = EMBEDDING_MODEL,
        dim: int = DIM,
        precisions: Sequence[str] = tuple(MODEL_PRECISIONS),
        cache: Optional[ModelCache] = None,
    ) -> None:
        if not precisions:
            raise ValueError("at least one precision is required")
        self.loader = loader or _default_loader
        self.model_id = model_id
        self.dim = dim
        self.precisions = list(precisions)
        self.cache = cache if cache is not None else DEFAULT_MODEL_CACHE

        self._lock = threading.Lock()
        self._state = ServiceState.UNLOADED
        self._future: Optional[Future] = None
        self._model: Any = None
        self.precision: Optional[str] = None
        self.load_attempts = 0

    @property
    def state(self) -> ServiceState:
        with self._lock:
            return self._state

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def ensure_model(self, timeout: Optional[float] = None) -> Any:
        """
        Return the loaded model, starting or joining the single in-flight
        load as needed.

        Raises ``ModelLoadError`` if the load failed and
        ``concurrent.futures.TimeoutError`` if ``timeout`` elapsed first.
        """
        with self._lock:
            if self._state is ServiceState.READY:
                return self._model
            if self._state is ServiceState.LOADING and self._future is not None:
                future = self._future
            else:
                future = Future()
                self._future = future
                self._state = ServiceState.LOADING
                self.load_attempts += 1
                threading.Thread(
                    target=self._run_load,
                    args=(future,),
                    name="embedding-model-load",
                    daemon=True,
                ).start()
        return future.result(timeout=timeout)

    def _run_load(self, future: Future) -> None:
        try:
            model, precision = self._load_with_fallback()
        except ModelLoadError as e:
            with self._lock:
                self._state = ServiceState.FAILED
                self._future = None
            logger.error("Embedding model load failed: {}", e)
            future.set_exception(e)
            return
        with self._lock:
            self._model = model
            self.precision = precision
            self._state = ServiceState.READY
            self._future = None
        logger.info("Embedding model {} ready ({})", self.model_id, precision)
        future.set_result(model)

    def _load_with_fallback(self) -> Tuple[Any, str]:
        first_error: Optional[BaseException] = None
        for precision in self.precisions:
            cached = self.cache.get(self.model_id, precision)
            if cached is not None:
                return cached, precision
            try:
                model = self.loader(self.model_id, precision)
            except Exception as e:
                logger.warning("Loading {} ({}) failed: {}", self.model_id, precision, e)
                if first_error is None:
                    first_error = e
                continue
            self.cache.put(self.model_id, precision, model)
            if first_error is not None:
                logger.warning("Using quantized fallback {} for {}", precision, self.model_id)
            return model, precision
        raise ModelLoadError(self.model_id, self.precisions, first_error) from first_error

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    def embed(self, text: str, timeout: Optional[float] = None) -> np.ndarray:
        """Embed one query into a unit-normalized ``dim`` float32 vector."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        model = self.ensure_model(timeout=timeout)
        out = model.encode(
            text,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return extract_vector(out, self.dim)

    def handle(self, request: EmbedRequest, timeout: Optional[float] = None) -> EmbedResponse:
        """
        Serve one request; failures come back as ``error`` on the response
        with the request's correlation id.
        """
        try:
            vec = self.embed(request.text, timeout=timeout)
        except FutureTimeout:
            logger.warning("Embed {} timed out waiting for model load", request.id)
            return EmbedResponse(id=request.id, error="Timed out waiting for embedding model")
        except Exception as e:
            logger.warning("Embed {} failed: {}", request.id, e)
            return EmbedResponse(id=request.id, error=str(e) or type(e).__name__)
        return EmbedResponse(id=request.id, vec=vec.tolist())
