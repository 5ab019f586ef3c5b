"""ArcFace embeddings for tracked face crops."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import cv2
import numpy as np

from facetrack.detectors.face_retina import RetinaFaceDetector, default_providers
from facetrack.recognition.services import ServiceError
from facetrack.types import FaceBox

LOGGER = logging.getLogger("facetrack.recognition.embed")

ARCFACE_INPUT = (112, 112)


def load_arcface_model(model_path: Optional[str], providers: Sequence[str]):
    """Load an InsightFace recognition model, falling back to the buffalo_l pack."""
    os.environ.setdefault("OMP_NUM_THREADS", "2")
    os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
    try:
        from insightface.model_zoo import get_model
    except ImportError as exc:  # pragma: no cover - import guard
        raise RuntimeError(
            "insightface is required for ArcFaceEmbedder. "
            "Install it via `pip install insightface`."
        ) from exc

    name = str(Path(model_path).expanduser()) if model_path else "arcface_r100_v1"
    LOGGER.info("Loading ArcFace model %s providers=%s", name, tuple(providers))
    model = get_model(name, download=True, providers=list(providers))
    if model is None:
        LOGGER.info("Falling back to FaceAnalysis recognition model")
        from insightface.app import FaceAnalysis

        analysis = FaceAnalysis(name="buffalo_l", providers=list(providers))
        analysis.prepare(ctx_id=0)
        model = analysis.models.get("recognition")
        if model is None:
            raise RuntimeError("Unable to load ArcFace recognition model via insightface FaceAnalysis")
    if hasattr(model, "prepare"):
        model.prepare(ctx_id=0)
    return model


class ArcFaceEmbedder:
    """Turns face crops into unit-length ArcFace embeddings.

    ``model`` may be any object with ``get_feat(image)``; when omitted an
    InsightFace model is loaded from ``model_path``.
    """

    def __init__(
        self,
        model_path: Optional[str] = None,
        providers: Optional[Sequence[str]] = None,
        model=None,
    ) -> None:
        self.providers = tuple(providers) if providers is not None else default_providers()
        self.model = model if model is not None else load_arcface_model(model_path, self.providers)

    def embed(self, face_image: np.ndarray) -> np.ndarray:
        """Embed a face crop of any size; crops are resized to 112x112 first.

        Raises ServiceError when the model fails or yields a zero vector.
        """
        image = _as_arcface_input(face_image)
        try:
            feat = self.model.get_feat(image)
        except Exception as exc:
            raise ServiceError(f"ArcFace inference failed: {exc}") from exc
        embedding = np.asarray(feat, dtype=np.float32).reshape(-1)
        norm = float(np.linalg.norm(embedding))
        if not np.isfinite(norm) or norm < 1e-6:
            raise ServiceError("ArcFace returned a degenerate embedding")
        return embedding / norm

    def embed_face(self, frame: np.ndarray, box: FaceBox, landmarks: Optional[np.ndarray] = None) -> np.ndarray:
        """Align the face at ``box`` in a full frame and embed it."""
        return self.embed(RetinaFaceDetector.align_to_112(frame, landmarks, box))


def _as_arcface_input(face_image: np.ndarray) -> np.ndarray:
    image = np.asarray(face_image)
    if image.ndim == 2:
        image = np.stack([image] * 3, axis=-1)
    if image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise ServiceError(f"Face crop has unusable shape {image.shape}")
    if image.shape[:2] != ARCFACE_INPUT[::-1]:
        image = cv2.resize(image, ARCFACE_INPUT, interpolation=cv2.INTER_LINEAR)
    return image
