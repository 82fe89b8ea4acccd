"""Tests for the batched corpus embedder."""
import numpy as np
import pytest

from recipevec.embedder import build_embed_doc, embed_corpus

from .conftest import TEST_DIM, FakeEncoder, make_recipe


class TestBuildEmbedDoc:
    def test_fields_joined_and_normalized(self):
        r = make_recipe(
            title="Tacos",
            ingredients="beans\ntortillas",
            instructions="Warm  up.",
            tags=["vegan", "mexican"],
        )
        assert build_embed_doc(r) == "Tacos vegan, mexican beans tortillas Warm up."

    def test_instructions_truncated(self):
        r = make_recipe(title="T", ingredients="", instructions="a" * 5000)
        doc = build_embed_doc(r)
        assert doc.count("a") == 1200


class TestEmbedCorpus:
    def test_one_model_call_per_batch(self):
        encoder = FakeEncoder()
        recipes = [make_recipe(i, title=f"recipe {i}") for i in range(7)]
        vectors = embed_corpus(recipes, encoder, dim=TEST_DIM, batch_size=3)
        assert encoder.calls == [3, 3, 1]
        assert vectors.shape == (7, TEST_DIM)
        assert vectors.dtype == np.float32
        norms = np.linalg.norm(vectors, axis=1)
        assert np.all(np.abs(norms - 1.0) < 1e-3)

    def test_rows_land_in_label_slots(self):
        encoder = FakeEncoder()
        recipes = [make_recipe(i, title=f"recipe {i}") for i in range(5)]
        vectors = embed_corpus(recipes, encoder, dim=TEST_DIM, batch_size=2)
        for label, r in enumerate(recipes):
            expected = encoder._vector(build_embed_doc(r))
            np.testing.assert_allclose(vectors[label], expected)

    def test_nan_row_becomes_zero_and_siblings_survive(self):
        encoder = FakeEncoder()
        recipes = [
            make_recipe(0, title="good one"),
            make_recipe(1, title="POISON"),
            make_recipe(2, title="good two"),
        ]
        vectors = embed_corpus(recipes, encoder, dim=TEST_DIM, batch_size=3)
        assert encoder.calls == [3]
        np.testing.assert_array_equal(vectors[1], np.zeros(TEST_DIM))
        assert abs(np.linalg.norm(vectors[0]) - 1.0) < 1e-3
        assert abs(np.linalg.norm(vectors[2]) - 1.0) < 1e-3

    def test_per_token_output_is_pooled(self):
        encoder = FakeEncoder(per_token=True)
        recipes = [make_recipe(i, title=f"recipe {i}") for i in range(2)]
        vectors = embed_corpus(recipes, encoder, dim=TEST_DIM, batch_size=2)
        for label, r in enumerate(recipes):
            expected = FakeEncoder()._vector(build_embed_doc(r))
            np.testing.assert_allclose(vectors[label], expected, rtol=1e-5, atol=1e-6)

    def test_model_failure_aborts(self):
        class Broken:
            def encode(self, docs, **kwargs):
                raise RuntimeError("out of memory")

        with pytest.raises(RuntimeError):
            embed_corpus([make_recipe()], Broken(), dim=TEST_DIM)

    def test_empty_corpus(self):
        vectors = embed_corpus([], FakeEncoder(), dim=TEST_DIM)
        assert vectors.shape == (0, TEST_DIM)
