"""Protocol definitions for recognition and emotion services."""

from __future__ import annotations

from typing import Optional, Protocol

import numpy as np

from facetrack.types import EmotionScores, RecognitionResult


class ServiceError(RuntimeError):
    """Raised by service adapters when a remote or model call fails."""


class RecognitionService(Protocol):
    """Resolves a face crop to a person.

    Returns None when the face is not recognised; raises on failure.
    """

    def recognize(self, identifier: str, face_image: np.ndarray) -> Optional[RecognitionResult]:
        ...


class EmotionService(Protocol):
    """Scores the emotional expression of a face crop."""

    def score(self, identifier: str, face_image: np.ndarray) -> Optional[EmotionScores]:
        ...


__all__ = ["EmotionService", "RecognitionService", "ServiceError"]
