"""RetinaFace detection and face crop utilities."""

from __future__ import annotations

import logging
import os
import platform
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from facetrack.types import Detection, FaceBox

LOGGER = logging.getLogger("facetrack.detectors.face")


def default_providers() -> Tuple[str, ...]:
    """Choose default ONNX providers based on platform."""
    if platform.system() == "Darwin" and platform.machine().lower() in {"arm64", "aarch64"}:
        return ("CoreMLExecutionProvider", "CPUExecutionProvider")
    return ("CPUExecutionProvider",)


# ArcFace reference landmarks for a 112x112 crop.
ARCFACE_REFERENCE = np.array(
    [
        [38.2946, 51.6963],
        [73.5318, 51.5014],
        [56.0252, 71.7366],
        [41.5493, 92.3655],
        [70.7299, 92.2041],
    ],
    dtype=np.float32,
)


class RetinaFaceDetector:
    """Wrapper around InsightFace RetinaFace detector with alignment utilities."""

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.5,
    ) -> None:
        os.environ.setdefault("OMP_NUM_THREADS", "2")
        os.environ.setdefault("ORT_INTRA_OP_NUM_THREADS", "2")
        try:
            from insightface.app import FaceAnalysis
        except ImportError as exc:  # pragma: no cover - import guard
            raise RuntimeError(
                "insightface is required for RetinaFaceDetector. "
                "Install it via `pip install insightface`."
            ) from exc

        self.det_size = tuple(det_size)
        self.det_thresh = det_thresh
        self.providers = tuple(providers) if providers is not None else default_providers()
        self.app = FaceAnalysis(name="buffalo_l", allowed_modules=["detection"], providers=list(self.providers))
        self.app.prepare(ctx_id=0, det_size=self.det_size)
        LOGGER.info(
            "Loaded RetinaFace detector det_size=%s det_thresh=%.2f providers=%s",
            self.det_size,
            det_thresh,
            self.providers,
        )

    def detect(self, image: np.ndarray, frame_idx: int) -> List[Detection]:
        """Run RetinaFace on an image and return detections in detector order."""
        detections: List[Detection] = []
        for face in self.app.get(image):
            score = float(face.det_score)
            if score < self.det_thresh:
                continue
            x1, y1, x2, y2 = (float(v) for v in face.bbox)
            landmarks = np.asarray(face.kps, dtype=np.float32) if face.kps is not None else None
            detections.append(
                Detection(
                    frame_idx=frame_idx,
                    bbox=FaceBox.from_xyxy(x1, y1, x2, y2),
                    score=score,
                    landmarks=landmarks,
                )
            )
        return detections

    @staticmethod
    def align_to_112(image: np.ndarray, landmarks: Optional[np.ndarray], box: FaceBox) -> np.ndarray:
        """Align face to 112x112 using landmarks if available, else crop+resize."""
        target_size = (112, 112)
        if landmarks is None or landmarks.shape != (5, 2):
            return cv2.resize(crop_face(image, box), target_size, interpolation=cv2.INTER_LINEAR)
        trans = cv2.estimateAffinePartial2D(landmarks.astype(np.float32), ARCFACE_REFERENCE, method=cv2.LMEDS)[0]
        if trans is None:
            return cv2.resize(crop_face(image, box), target_size, interpolation=cv2.INTER_LINEAR)
        return cv2.warpAffine(image, trans, target_size, borderValue=0.0)


def crop_face(image: np.ndarray, box: FaceBox, margin: float = 0.0) -> np.ndarray:
    """Crop ``box`` (optionally grown by ``margin`` of its size) clamped to the image."""
    height, width = image.shape[:2]
    pad_x = box.width * margin
    pad_y = box.height * margin
    x1, y1, x2, y2 = box.as_xyxy()
    left = max(0, int(round(x1 - pad_x)))
    top = max(0, int(round(y1 - pad_y)))
    right = min(width, int(round(x2 + pad_x)))
    bottom = min(height, int(round(y2 + pad_y)))
    if right <= left or bottom <= top:
        return image.copy()
    return image[top:bottom, left:right].copy()
