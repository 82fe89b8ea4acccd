"""End-to-end build with in-memory datasets and a fake encoder."""
import numpy as np
import pytest

from recipevec.build import BuildError, build_store
from recipevec.store import load_store

from .conftest import TEST_DIM, FakeEncoder


class TestBuildStore:
    def test_full_pipeline(self, tmp_path, dataset_client):
        encoder = FakeEncoder()
        build_store(
            out_dir=tmp_path,
            batch_size=2,
            model_id="fake-model",
            dim=TEST_DIM,
            encoder_factory=lambda model_id: encoder,
            client=dataset_client,
            build_id="2024-03-03",
        )
        store = load_store(tmp_path)

        titles = [r["title"] for r in store.recipes]
        # toast filtered (short instructions), wikibooks soup de-duplicated
        assert titles == ["Vegan Tacos", "Chicken Soup", "Hummus"]
        assert [r["label"] for r in store.recipes] == [0, 1, 2]
        assert store.recipes[1]["source"] == "openrecipes"
        assert all(len(r["instructions"].strip()) > 10 for r in store.recipes)

        assert store.meta.model == "fake-model"
        assert store.meta.count == 3
        assert store.vectors.shape == (3, TEST_DIM)
        norms = np.linalg.norm(store.vectors, axis=1)
        assert np.all(np.abs(norms - 1.0) < 1e-3)
        assert encoder.calls == [2, 1]

    def test_fetch_failure_writes_nothing(self, tmp_path):
        import httpx

        client = httpx.Client(transport=httpx.MockTransport(lambda req: httpx.Response(503)))
        with pytest.raises(BuildError) as exc:
            build_store(
                out_dir=tmp_path,
                dim=TEST_DIM,
                encoder_factory=lambda model_id: FakeEncoder(),
                client=client,
            )
        client.close()
        assert exc.value.stage == "fetch/parse"
        assert list(tmp_path.iterdir()) == []

    def test_embedding_failure_writes_nothing(self, tmp_path, dataset_client):
        class Broken:
            def encode(self, docs, **kwargs):
                raise RuntimeError("boom")

        with pytest.raises(BuildError) as exc:
            build_store(
                out_dir=tmp_path,
                dim=TEST_DIM,
                encoder_factory=lambda model_id: Broken(),
                client=dataset_client,
            )
        assert exc.value.stage == "embedding"
        assert list(tmp_path.iterdir()) == []

    def test_write_failure_reports_write_stage(self, tmp_path, dataset_client):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(BuildError) as exc:
            build_store(
                out_dir=blocker / "store",
                dim=TEST_DIM,
                encoder_factory=lambda model_id: FakeEncoder(),
                client=dataset_client,
            )
        assert exc.value.stage == "write"
        assert isinstance(exc.value.cause, OSError)

    def test_corpus_failure_reports_corpus_stage(self, tmp_path, dataset_client, monkeypatch):
        def broken(per_source):
            raise ValueError("bad merge")

        monkeypatch.setattr("recipevec.build.build_corpus", broken)
        with pytest.raises(BuildError) as exc:
            build_store(
                out_dir=tmp_path,
                dim=TEST_DIM,
                encoder_factory=lambda model_id: FakeEncoder(),
                client=dataset_client,
            )
        assert exc.value.stage == "corpus"
        assert list(tmp_path.iterdir()) == []
