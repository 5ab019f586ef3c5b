"""Cosine similarity matcher against facebank centroids."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from facetrack.recognition.services import ServiceError
from facetrack.types import FacebankEntry, RecognitionResult, l2_normalize

LOGGER = logging.getLogger("facetrack.recognition.matcher")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape:
        raise ValueError("Embedding shapes do not match")
    return float(np.dot(a, b))


class FacebankRecognizer:
    """Recognition service backed by an embedder and facebank centroids.

    ``embedder`` is any object with ``embed(face_image) -> np.ndarray``
    (see :class:`facetrack.recognition.embed_arcface.ArcFaceEmbedder`).
    """

    def __init__(
        self,
        facebank: Dict[str, FacebankEntry],
        embedder,
        similarity_th: float = 0.45,
        min_margin: float = 0.0,
        per_label_th: Optional[Dict[str, float]] = None,
    ) -> None:
        self.entries = {
            label: FacebankEntry(
                label=entry.label,
                person_id=entry.person_id,
                embedding=l2_normalize(np.asarray(entry.embedding, dtype=np.float32)),
                sample_paths=list(entry.sample_paths),
            )
            for label, entry in facebank.items()
        }
        self.embedder = embedder
        self.similarity_th = similarity_th
        self.min_margin = min_margin
        self.per_label_th = per_label_th or {}

    def topk(self, embedding: np.ndarray, k: int = 3) -> List[Tuple[str, float]]:
        """Return the top-k matches without applying the similarity threshold."""
        if not self.entries:
            return []
        embedding = l2_normalize(embedding)
        sims = [
            (label, cosine_similarity(entry.embedding, embedding))
            for label, entry in self.entries.items()
        ]
        sims.sort(key=lambda item: item[1], reverse=True)
        return sims[:k]

    def best_match(self, embedding: np.ndarray) -> Optional[Tuple[str, float]]:
        scores = self.topk(embedding, k=2)
        if not scores:
            return None
        top_label, top_score = scores[0]
        runner_score = scores[1][1] if len(scores) > 1 else float("-inf")
        required = self.per_label_th.get(top_label, self.similarity_th)
        if top_score < required:
            return None
        if (top_score - runner_score) < self.min_margin:
            LOGGER.debug(
                "Ambiguous match %s=%.3f runner=%.3f margin<%.3f",
                top_label,
                top_score,
                runner_score,
                self.min_margin,
            )
            return None
        return top_label, top_score

    def recognize(self, identifier: str, face_image: np.ndarray) -> Optional[RecognitionResult]:
        try:
            embedding = np.asarray(self.embedder.embed(face_image), dtype=np.float32).reshape(-1)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(f"Embedding failed for identity {identifier}: {exc}") from exc
        match = self.best_match(embedding)
        if match is None:
            LOGGER.debug("Identity %s did not match the facebank", identifier)
            return None
        label, score = match
        entry = self.entries[label]
        return RecognitionResult(name=entry.label, person_id=entry.person_id, similarity=score)
