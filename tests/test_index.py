# tests/test_index.py
import math

import numpy as np
import pytest

from app.memory.index import build_index, tokenize
from app.memory.types import Chunk


def _chunks(*texts, doc_id="doc"):
    return [
        Chunk(id=f"{doc_id}:{i}", doc_id=doc_id, page_start=i + 1, page_end=i + 1, text=text)
        for i, text in enumerate(texts)
    ]


class TestTokenize:

    def test_lowercases_and_strips_punctuation(self):
        assert tokenize("Revenue, UP 12%!") == ["revenue", "up", "12"]

    def test_drops_single_character_tokens(self):
        assert tokenize("a b cd e fg") == ["cd", "fg"]

    def test_empty_text(self):
        assert tokenize("") == []
        assert tokenize(None) == []


class TestBuildIndex:

    def test_vocabulary_in_first_seen_order(self):
        index = build_index(_chunks("beta alpha", "gamma beta"))

        assert index.vocabulary == ["beta", "alpha", "gamma"]
        assert index.vocabulary_index == {"beta": 0, "alpha": 1, "gamma": 2}

    def test_smoothed_idf(self):
        index = build_index(_chunks("beta alpha", "gamma beta"))

        # beta appears in both chunks, alpha in one
        assert index.idf[0] == pytest.approx(math.log(3 / 3) + 1)
        assert index.idf[1] == pytest.approx(math.log(3 / 2) + 1)

    def test_vectors_have_unit_length(self):
        index = build_index(_chunks("solar panels convert light", "wind turbines spin", "grid storage batteries"))

        norms = np.linalg.norm(index.vectors, axis=1)

        assert norms == pytest.approx(np.ones(3))

    def test_chunk_without_tokens_is_zero_vector(self):
        index = build_index(_chunks("real words here", "! ? a"))

        assert np.linalg.norm(index.vectors[0]) == pytest.approx(1.0)
        assert not index.vectors[1].any()

    def test_empty_chunk_list(self):
        index = build_index([])

        assert index.size == 0
        assert index.vocabulary == []
        assert index.vectorize("anything").shape == (0,)

    def test_matches_only_its_own_chunks(self):
        chunks = _chunks("one two", "three four")
        index = build_index(chunks)

        assert index.matches(chunks)
        assert not index.matches(chunks[:1])


class TestVectorize:

    def test_unknown_terms_are_ignored(self):
        index = build_index(_chunks("apples oranges", "pears plums"))

        vector = index.vectorize("apples bananas")

        assert vector[index.vocabulary_index["apples"]] == pytest.approx(1.0)
        assert np.count_nonzero(vector) == 1

    def test_query_with_no_known_terms_is_zero(self):
        index = build_index(_chunks("apples oranges"))

        assert not index.vectorize("zebra").any()
        assert not index.vectorize("").any()

    def test_self_similarity_is_maximal(self):
        texts = [
            "the mitochondria produce energy for the cell",
            "rivers carry sediment toward the delta",
            "compilers translate source code into machine instructions",
        ]
        chunks = _chunks(*texts)
        index = build_index(chunks)

        for row, text in enumerate(texts):
            scores = index.vectors @ index.vectorize(text)
            assert int(np.argmax(scores)) == row
            assert scores[row] == pytest.approx(1.0)
