"""Tracked face identity: position state, nearest-face matching and metadata."""

from __future__ import annotations

import itertools
import logging
import uuid
from typing import Callable, Iterator, Optional, Sequence, Tuple

from facetrack.geometry import center_of, distance, surface_area
from facetrack.types import (
    Detection,
    EmotionScores,
    FaceAttributes,
    FaceBox,
    Point,
    RecognitionResult,
)

LOGGER = logging.getLogger("facetrack.tracking.identity")

IdentifierFactory = Callable[[], str]


def uuid_identifiers() -> IdentifierFactory:
    """Factory producing random UUID4 strings."""
    return lambda: str(uuid.uuid4())


def sequential_identifiers(prefix: str = "face") -> IdentifierFactory:
    """Deterministic factory producing ``prefix-1``, ``prefix-2``, ..."""
    counter: Iterator[int] = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"


class TrackedIdentity:
    """A face followed continuously across frames.

    Position state (``bounding_box``, ``surface_area``, ``center_point``) is
    read-only and changes only through :meth:`update_position`. The metadata
    fields ``name``, ``person_id``, ``appearance`` and ``emotion_scores`` stay
    ``None`` until an external recognition or emotion service resolves them.
    """

    def __init__(self, box: FaceBox, identifier_factory: Optional[IdentifierFactory] = None) -> None:
        factory = identifier_factory or uuid_identifiers()
        self._identifier = factory()
        self.name: Optional[str] = None
        self.person_id: Optional[str] = None
        self.appearance: Optional[FaceAttributes] = None
        self.emotion_scores: Optional[EmotionScores] = None
        self.update_position(box)

    def __repr__(self) -> str:
        return (
            f"TrackedIdentity(identifier={self._identifier!r}, bounding_box={self._bounding_box!r}, "
            f"name={self.name!r})"
        )

    @property
    def identifier(self) -> str:
        return self._identifier

    @property
    def bounding_box(self) -> FaceBox:
        return self._bounding_box

    @property
    def surface_area(self) -> float:
        """Box area; callers use it to pick the largest (closest) face."""
        return self._surface_area

    @property
    def center_point(self) -> Point:
        return self._center_point

    @property
    def is_identified(self) -> bool:
        return self.person_id is not None

    def update_position(self, box: FaceBox) -> None:
        """Move the identity to ``box`` and refresh the derived geometry."""
        self._bounding_box = box
        self._surface_area = surface_area(box)
        self._center_point = center_of(box)

    def nearest_face_distance(self, faces: Sequence[Detection]) -> Optional[Tuple[Detection, float]]:
        """Return the closest detection and its center distance, or None if empty.

        Ties keep the earliest detection in input order.
        """
        if len(faces) == 0:
            return None

        nearest_face = faces[0]
        nearest_distance = distance(self._center_point, center_of(nearest_face.bbox))
        for face in faces[1:]:
            face_distance = distance(self._center_point, center_of(face.bbox))
            if face_distance < nearest_distance:
                nearest_face = face
                nearest_distance = face_distance
        return nearest_face, nearest_distance

    def find_nearest_face(self, faces: Sequence[Detection]) -> Optional[Detection]:
        """Return the detection closest to this identity's center point.

        Does not move the identity; commit a match with :meth:`update_position`.
        """
        match = self.nearest_face_distance(faces)
        if match is None:
            return None
        return match[0]

    def apply_recognition(self, result: RecognitionResult) -> None:
        """Overwrite name, person id and appearance together from one result."""
        if self.person_id is not None and self.person_id != result.person_id:
            LOGGER.info(
                "Identity %s re-identified %s -> %s",
                self._identifier,
                self.name,
                result.name,
            )
        self.name = result.name
        self.person_id = result.person_id
        self.appearance = result.appearance

    def clear_recognition(self) -> None:
        self.name = None
        self.person_id = None
        self.appearance = None

    def apply_emotion(self, scores: EmotionScores) -> None:
        """Replace the emotion scores in full."""
        self.emotion_scores = scores
