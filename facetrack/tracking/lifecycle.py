"""Frame-to-frame lifecycle of tracked identities."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from facetrack.config import TrackerConfig
from facetrack.geometry import is_well_formed
from facetrack.tracking.identity import IdentifierFactory, TrackedIdentity
from facetrack.types import Detection

LOGGER = logging.getLogger("facetrack.tracking.lifecycle")


class TrackStatus(str, Enum):
    PROVISIONAL = "provisional"
    TRACKED = "tracked"
    STALE = "stale"
    REMOVED = "removed"


@dataclass
class TrackRecord:
    """Lifecycle bookkeeping wrapped around a TrackedIdentity."""

    identity: TrackedIdentity
    first_frame: int
    last_seen_frame: int
    status: TrackStatus = TrackStatus.PROVISIONAL
    hits: int = 1
    missed: int = 0

    @property
    def identifier(self) -> str:
        return self.identity.identifier

    @property
    def duration_frames(self) -> int:
        return self.last_seen_frame - self.first_frame + 1


@dataclass
class Match:
    identifier: str
    detection: Detection
    distance: float


@dataclass
class FrameUpdate:
    """Outcome of feeding one frame of detections to the tracker."""

    frame_idx: int
    matches: List[Match] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    removed: List[TrackRecord] = field(default_factory=list)


class IdentityTracker:
    """Creates, matches, ages and removes TrackedIdentity objects.

    Each live identity, in creation order, claims its nearest unclaimed
    detection. Detections nobody claims start new provisional identities.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        identifier_factory: Optional[IdentifierFactory] = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self._identifier_factory = identifier_factory
        self._records: Dict[str, TrackRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._records

    def get(self, identifier: str) -> Optional[TrackedIdentity]:
        record = self._records.get(identifier)
        return record.identity if record else None

    def record(self, identifier: str) -> Optional[TrackRecord]:
        return self._records.get(identifier)

    def live(self) -> List[TrackedIdentity]:
        return [record.identity for record in self._records.values()]

    def confirmed(self) -> List[TrackedIdentity]:
        return [
            record.identity
            for record in self._records.values()
            if record.status == TrackStatus.TRACKED
        ]

    def largest(self) -> Optional[TrackedIdentity]:
        """Confirmed identity with the largest surface area (closest face)."""
        candidates = self.confirmed()
        if not candidates:
            return None
        return max(candidates, key=lambda identity: identity.surface_area)

    def update(self, detections: Sequence[Detection], frame_idx: int) -> FrameUpdate:
        result = FrameUpdate(frame_idx=frame_idx)
        unclaimed = [det for det in detections if self._accept(det)]

        for record in list(self._records.values()):
            match = record.identity.nearest_face_distance(unclaimed)
            max_distance = self.config.max_match_distance
            if match is not None and (max_distance is None or match[1] <= max_distance):
                detection, face_distance = match
                unclaimed = [det for det in unclaimed if det is not detection]
                record.identity.update_position(detection.bbox)
                self._mark_hit(record, frame_idx)
                result.matches.append(Match(record.identifier, detection, face_distance))
                continue
            self._mark_miss(record, result)

        for detection in unclaimed:
            identity = TrackedIdentity(detection.bbox, self._identifier_factory)
            self._records[identity.identifier] = TrackRecord(
                identity=identity,
                first_frame=frame_idx,
                last_seen_frame=frame_idx,
            )
            if self.config.confirm_frames <= 1:
                self._records[identity.identifier].status = TrackStatus.TRACKED
            result.created.append(identity.identifier)
            LOGGER.info("New identity %s at frame %d box=%s", identity.identifier, frame_idx, detection.bbox)

        return result

    def flush(self) -> List[TrackRecord]:
        """Remove every live identity and return their records."""
        records = list(self._records.values())
        for record in records:
            record.status = TrackStatus.REMOVED
        self._records.clear()
        return records

    def _accept(self, detection: Detection) -> bool:
        box = detection.bbox
        if not is_well_formed(box):
            LOGGER.debug("Dropping malformed detection %s at frame %d", box, detection.frame_idx)
            return False
        min_px = self.config.min_face_px
        if min_px and (box.width < min_px or box.height < min_px):
            return False
        return True

    def _mark_hit(self, record: TrackRecord, frame_idx: int) -> None:
        record.hits += 1
        record.missed = 0
        record.last_seen_frame = frame_idx
        if record.status == TrackStatus.STALE:
            LOGGER.debug("Identity %s recovered at frame %d", record.identifier, frame_idx)
            record.status = TrackStatus.TRACKED
        elif record.status == TrackStatus.PROVISIONAL and record.hits >= self.config.confirm_frames:
            LOGGER.debug("Identity %s confirmed at frame %d", record.identifier, frame_idx)
            record.status = TrackStatus.TRACKED

    def _mark_miss(self, record: TrackRecord, result: FrameUpdate) -> None:
        record.missed += 1
        if record.status == TrackStatus.PROVISIONAL or record.missed > self.config.max_missed_frames:
            record.status = TrackStatus.REMOVED
            self._records.pop(record.identifier, None)
            result.removed.append(record)
            LOGGER.info(
                "Removed identity %s (name=%s) after %d missed frames",
                record.identifier,
                record.identity.name,
                record.missed,
            )
            return
        if record.status == TrackStatus.TRACKED:
            record.status = TrackStatus.STALE
        result.stale.append(record.identifier)
