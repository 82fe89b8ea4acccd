"""Tests for the FastAPI surface."""
import threading
import time

import numpy as np
import pytest
from fastapi.testclient import TestClient

from recipevec import api
from recipevec.config import BuildMetadata, EmbedRequest
from recipevec.query_service import QueryEmbeddingService
from recipevec.store import VectorStore

from .conftest import TEST_DIM, FakeEncoder


class _StubEncoder:
    """Returns a fixed direction so search order is predictable."""

    def encode(self, text, **kwargs):
        v = np.zeros(TEST_DIM, dtype=np.float32)
        v[1] = 1.0
        return v


@pytest.fixture
def client():
    svc = QueryEmbeddingService(loader=lambda m, p: _StubEncoder(), model_id="stub", dim=TEST_DIM)
    vectors = np.eye(3, TEST_DIM, dtype=np.float32)
    store = VectorStore(
        recipes=[{"label": i, "id": f"openrecipes_{i}", "title": f"r{i}"} for i in range(3)],
        vectors=vectors,
        meta=BuildMetadata(buildId="2024-01-01", model="stub", dim=TEST_DIM, count=3),
    )
    api.set_service(svc)
    api.set_store(store)
    yield TestClient(api.app)
    api.set_service(None)
    api.set_store(None)


class TestApi:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "healthy"}

    def test_embed(self, client):
        r = client.post("/embed", json={"id": "q1", "text": "pasta"})
        body = r.json()
        assert r.status_code == 200
        assert body["id"] == "q1"
        assert body["error"] is None
        assert len(body["vec"]) == TEST_DIM

    def test_embed_failure_keeps_correlation_id(self, client):
        def broken(model_id, precision):
            raise OSError("no network")

        api.set_service(QueryEmbeddingService(loader=broken, model_id="stub", dim=TEST_DIM))
        body = client.post("/embed", json={"id": "q2", "text": "pasta"}).json()
        assert body["id"] == "q2"
        assert body["vec"] is None
        assert "no network" in body["error"]

    def test_search_ranks_by_dot_product(self, client):
        r = client.post("/search", json={"query": "anything", "top_k": 2})
        assert r.status_code == 200
        results = r.json()["results"]
        assert [h["label"] for h in results] == [1, 0]
        assert results[0]["score"] == pytest.approx(1.0)
        assert results[0]["recipe"]["title"] == "r1"

    def test_search_rejects_blank_query(self, client):
        assert client.post("/search", json={"query": "   "}).status_code == 422


def test_fake_encoder_is_unit_norm():
    v = FakeEncoder().encode("abc")
    assert abs(np.linalg.norm(v) - 1.0) < 1e-6


class TestServiceCreation:
    def test_concurrent_first_requests_load_model_once(self, monkeypatch):
        loads = []
        real_service = api.QueryEmbeddingService

        def loader(model_id, precision):
            loads.append(precision)
            return _StubEncoder()

        def slow_service():
            time.sleep(0.05)
            return real_service(loader=loader, model_id="stub", dim=TEST_DIM)

        monkeypatch.setattr(api, "QueryEmbeddingService", slow_service)
        api.set_service(None)
        responses = []

        def worker(i):
            responses.append(api.embed(EmbedRequest(id=f"q{i}", text="pasta")))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(2)]
        try:
            for t in threads:
                t.start()
            for t in threads:
                t.join(5)
        finally:
            api.set_service(None)

        assert loads == ["fp32"]
        assert len(responses) == 2
        assert all(r.error is None for r in responses)

    def test_services_share_the_default_cache(self):
        a = QueryEmbeddingService(model_id="stub", dim=TEST_DIM)
        b = QueryEmbeddingService(model_id="stub", dim=TEST_DIM)
        assert a.cache is b.cache
