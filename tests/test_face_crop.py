import numpy as np
import pytest

pytest.importorskip("cv2")

from facetrack.detectors.face_retina import RetinaFaceDetector, crop_face
from facetrack.types import FaceBox


def test_crop_face_clamps_to_image():
    image = np.arange(100 * 80 * 3, dtype=np.uint8).reshape(100, 80, 3)
    crop = crop_face(image, FaceBox(70, 90, 20, 20))
    assert crop.shape == (10, 10, 3)


def test_crop_face_with_margin():
    image = np.zeros((100, 100, 3), dtype=np.uint8)
    crop = crop_face(image, FaceBox(40, 40, 20, 20), margin=0.5)
    assert crop.shape == (40, 40, 3)


def test_crop_face_outside_image_returns_full_frame():
    image = np.zeros((50, 50, 3), dtype=np.uint8)
    assert crop_face(image, FaceBox(200, 200, 10, 10)).shape == image.shape


def test_align_without_landmarks_resizes_crop():
    image = np.zeros((200, 200, 3), dtype=np.uint8)
    aligned = RetinaFaceDetector.align_to_112(image, None, FaceBox(10, 10, 60, 80))
    assert aligned.shape == (112, 112, 3)
