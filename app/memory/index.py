# app/memory/index.py

"""
Lexical TF-IDF index over one document's chunk list.

Architecture contract:
chunker → index → retriever

The index is a derived artifact: it is valid only for the exact chunk list
it was built from and is never persisted. Any change to the chunk list means
a full rebuild via `build_index`.

Weighting:
    tf(t)  = raw count of t in the chunk
    idf(t) = ln((N + 1) / (df(t) + 1)) + 1
Vectors are L2-normalized, so a dot product is cosine similarity.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from app.memory.types import Chunk

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")

MIN_TOKEN_LENGTH = 2


def tokenize(text: str) -> List[str]:
    """Lowercase, replace non-alphanumerics with spaces, drop 1-char tokens."""

    if not text:
        return []

    cleaned = _NON_ALNUM.sub(" ", text.lower())

    return [token for token in cleaned.split() if len(token) >= MIN_TOKEN_LENGTH]


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:

    norms = np.linalg.norm(vectors, axis=1, keepdims=True)

    # zero rows stay zero
    norms[norms == 0] = 1.0

    return vectors / norms


@dataclass(frozen=True)
class LexicalIndex:

    vocabulary: List[str]
    vocabulary_index: Dict[str, int]
    idf: np.ndarray
    vectors: np.ndarray
    chunk_ids: Tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.chunk_ids)

    def vectorize(self, text: str) -> np.ndarray:
        """
        Project text onto the existing vocabulary.

        Terms the index has never seen contribute nothing; text with no
        known terms maps to the zero vector.
        """

        vector = np.zeros(len(self.vocabulary), dtype=np.float64)

        for term, count in Counter(tokenize(text)).items():

            slot = self.vocabulary_index.get(term)

            if slot is None:
                continue

            vector[slot] = count * self.idf[slot]

        norm = float(np.linalg.norm(vector))

        return vector / (norm or 1.0)

    def matches(self, chunks: Sequence[Chunk]) -> bool:
        """True if this index was built from exactly these chunks."""
        return tuple(chunk.id for chunk in chunks) == self.chunk_ids


def build_index(chunks: Sequence[Chunk]) -> LexicalIndex:

    term_counts = [Counter(tokenize(chunk.text)) for chunk in chunks]

    # vocabulary in first-seen order
    vocabulary_index: Dict[str, int] = {}
    document_frequency: List[int] = []

    for counts in term_counts:

        for term in counts:

            slot = vocabulary_index.get(term)

            if slot is None:
                vocabulary_index[term] = len(document_frequency)
                document_frequency.append(1)
            else:
                document_frequency[slot] += 1

    total = len(chunks)

    idf = np.array(
        [math.log((total + 1) / (df + 1)) + 1 for df in document_frequency],
        dtype=np.float64,
    )

    vectors = np.zeros((total, len(vocabulary_index)), dtype=np.float64)

    for row, counts in enumerate(term_counts):

        for term, count in counts.items():

            slot = vocabulary_index[term]

            vectors[row, slot] = count * idf[slot]

    if total:
        vectors = _normalize_rows(vectors)

    logger.info(
        "Lexical index built",
        extra={
            "chunks": total,
            "vocabulary_size": len(vocabulary_index),
        },
    )

    return LexicalIndex(
        vocabulary=list(vocabulary_index),
        vocabulary_index=vocabulary_index,
        idf=idf,
        vectors=vectors,
        chunk_ids=tuple(chunk.id for chunk in chunks),
    )
