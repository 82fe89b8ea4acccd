from __future__ import annotations

"""
FastAPI application serving query embeddings and brute-force search.

- ``POST /embed``: one embedding per request, correlated by ``id``;
  failures come back as ``error`` with the same id
- ``POST /search``: embeds the query with the same service and scores
  every stored vector by dot product
- The embedding model loads lazily (single flight) on the first request;
  the vector store loads lazily on the first search
"""

import threading
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import (
    ASSETS_DIR,
    EmbedRequest,
    EmbedResponse,
    HealthResponse,
    SearchHit,
    SearchRequest,
    SearchResponse,
)
from .query_service import QueryEmbeddingService
from .store import VectorStore, load_store, search

app = FastAPI(title="recipevec")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[QueryEmbeddingService] = None
_store: Optional[VectorStore] = None
_service_lock = threading.Lock()
_store_lock = threading.Lock()


def get_service() -> QueryEmbeddingService:
    global _service
    with _service_lock:
        if _service is None:
            _service = QueryEmbeddingService()
        return _service


def set_service(service: Optional[QueryEmbeddingService]) -> None:
    global _service
    with _service_lock:
        _service = service


def get_store() -> VectorStore:
    global _store
    with _store_lock:
        if _store is None:
            _store = load_store(ASSETS_DIR)
        return _store


def set_store(store: Optional[VectorStore]) -> None:
    global _store
    with _store_lock:
        _store = store


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.post("/embed", response_model=EmbedResponse)
def embed(req: EmbedRequest) -> EmbedResponse:
    return get_service().handle(req)


@app.post("/search", response_model=SearchResponse)
def search_recipes(req: SearchRequest) -> SearchResponse:
    query = req.query.strip()
    if not query:
        raise HTTPException(status_code=422, detail="Query must be non-empty")
    try:
        store = get_store()
    except (FileNotFoundError, ValueError) as e:
        logger.error("Vector store unavailable: {}", e)
        raise HTTPException(status_code=503, detail="Vector store not available")

    resp = get_service().handle(EmbedRequest(id="search", text=query))
    if resp.error is not None:
        raise HTTPException(status_code=503, detail=resp.error)

    hits = search(store, resp.vec, req.top_k)
    logger.info("Search returned {} hits", len(hits))
    return SearchResponse(
        results=[SearchHit(label=r["label"], score=s, recipe=r) for r, s in hits]
    )
