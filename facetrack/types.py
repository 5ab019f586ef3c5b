"""Common dataclasses and type aliases used across the facetrack package."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

Point = Tuple[float, float]


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned face rectangle: origin (top-left), width and height in pixels."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "FaceBox":
        return cls(float(x1), float(y1), float(x2) - float(x1), float(y2) - float(y1))

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass
class Detection:
    """Face detection returned by detectors for a single frame."""

    frame_idx: int
    bbox: FaceBox
    score: float = 1.0
    landmarks: Optional[np.ndarray] = None


@dataclass(frozen=True)
class FaceAttributes:
    """Appearance attributes reported by a recognition service."""

    age: Optional[float] = None
    gender: Optional[str] = None
    smile: Optional[float] = None
    glasses: Optional[str] = None
    facial_hair: Dict[str, float] = field(default_factory=dict)
    head_pose: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class EmotionScores:
    """Per-face emotion probabilities reported by an emotion service."""

    anger: float = 0.0
    contempt: float = 0.0
    disgust: float = 0.0
    fear: float = 0.0
    happiness: float = 0.0
    neutral: float = 0.0
    sadness: float = 0.0
    surprise: float = 0.0

    @classmethod
    def from_mapping(cls, scores: Mapping[str, float]) -> "EmotionScores":
        known = {f.name for f in fields(cls)}
        unknown = set(scores) - known
        if unknown:
            raise ValueError(f"Unknown emotion keys: {sorted(unknown)}")
        return cls(**{key: float(value) for key, value in scores.items()})

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @property
    def dominant(self) -> str:
        """Name of the highest-scoring emotion (declaration order breaks ties)."""
        best_name = ""
        best_score = float("-inf")
        for name, score in self.as_dict().items():
            if score > best_score:
                best_name = name
                best_score = score
        return best_name


@dataclass(frozen=True)
class RecognitionResult:
    """Identity bundle resolved by a recognition service; applied as a unit."""

    name: str
    person_id: str
    appearance: Optional[FaceAttributes] = None
    similarity: Optional[float] = None


@dataclass
class FacebankEntry:
    """Representation of a facebank centroid entry."""

    label: str
    person_id: str
    embedding: np.ndarray
    sample_paths: List[Path] = field(default_factory=list)


def l2_normalize(vec: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    """L2-normalize the input vector."""
    norm = np.linalg.norm(vec)
    if norm < eps:
        return vec
    return vec / norm
