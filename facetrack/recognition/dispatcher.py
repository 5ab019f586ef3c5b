"""Asynchronous recognition/emotion requests applied back onto tracked identities."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy as np

from facetrack.config import TrackerConfig
from facetrack.recognition.services import EmotionService, RecognitionService
from facetrack.tracking.lifecycle import IdentityTracker

LOGGER = logging.getLogger("facetrack.recognition.dispatcher")

RECOGNITION = "recognition"
EMOTION = "emotion"


@dataclass
class _Request:
    kind: str
    identifier: str
    frame_idx: int
    future: Future


@dataclass
class _IdentitySchedule:
    last_recognition_frame: int = -10**9
    last_emotion_frame: int = -10**9
    recognition_pending: bool = False
    emotion_pending: bool = False


@dataclass
class DispatchReport:
    """Counts of what a single collect() pass did."""

    recognized: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    emotions: List[str] = field(default_factory=list)
    discarded: int = 0
    failed: int = 0


class MetadataDispatcher:
    """Submits service calls for live identities and applies finished results.

    Results are written only inside :meth:`collect`, from the caller's thread,
    and only onto identities still live in the tracker.
    """

    def __init__(
        self,
        tracker: IdentityTracker,
        recognition: Optional[RecognitionService] = None,
        emotion: Optional[EmotionService] = None,
        config: Optional[TrackerConfig] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self.tracker = tracker
        self.recognition = recognition
        self.emotion = emotion
        self.config = config or tracker.config
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.config.workers, thread_name_prefix="facetrack-meta"
        )
        self._pending: List[_Request] = []
        self._schedule: Dict[str, _IdentitySchedule] = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    def schedule(self, frame_idx: int, crops: Mapping[str, np.ndarray]) -> int:
        """Submit due requests for the given identity crops; returns submissions."""
        submitted = 0
        for identifier, crop in crops.items():
            identity = self.tracker.get(identifier)
            if identity is None:
                continue
            state = self._schedule.setdefault(identifier, _IdentitySchedule())

            if (
                self.recognition is not None
                and not identity.is_identified
                and not state.recognition_pending
                and frame_idx - state.last_recognition_frame >= self.config.recognize_every_n
            ):
                future = self.executor.submit(self.recognition.recognize, identifier, crop)
                self._pending.append(_Request(RECOGNITION, identifier, frame_idx, future))
                state.recognition_pending = True
                state.last_recognition_frame = frame_idx
                submitted += 1

            if (
                self.emotion is not None
                and not state.emotion_pending
                and frame_idx - state.last_emotion_frame >= self.config.emotion_every_n
            ):
                future = self.executor.submit(self.emotion.score, identifier, crop)
                self._pending.append(_Request(EMOTION, identifier, frame_idx, future))
                state.emotion_pending = True
                state.last_emotion_frame = frame_idx
                submitted += 1
        return submitted

    def collect(self) -> DispatchReport:
        """Apply every finished request; unfinished ones stay pending."""
        report = DispatchReport()
        still_pending: List[_Request] = []
        for request in self._pending:
            if not request.future.done():
                still_pending.append(request)
                continue
            self._apply(request, report)
        self._pending = still_pending

        for identifier in [i for i in self._schedule if i not in self.tracker]:
            if not any(r.identifier == identifier for r in self._pending):
                self._schedule.pop(identifier, None)
        return report

    def shutdown(self, wait: bool = True) -> DispatchReport:
        """Wait for (or cancel) in-flight requests and apply what finished."""
        if not wait:
            for request in self._pending:
                request.future.cancel()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
        elif wait:
            for request in self._pending:
                if not request.future.cancelled():
                    request.future.exception()
        return self.collect()

    def _apply(self, request: _Request, report: DispatchReport) -> None:
        state = self._schedule.get(request.identifier)
        if state is not None:
            if request.kind == RECOGNITION:
                state.recognition_pending = False
            else:
                state.emotion_pending = False

        if request.future.cancelled():
            return
        exc = request.future.exception()
        if exc is not None:
            report.failed += 1
            LOGGER.warning(
                "%s request for identity %s (frame %d) failed: %s",
                request.kind,
                request.identifier,
                request.frame_idx,
                exc,
            )
            return

        identity = self.tracker.get(request.identifier)
        if identity is None:
            report.discarded += 1
            LOGGER.debug(
                "Discarding %s result for lost identity %s (frame %d)",
                request.kind,
                request.identifier,
                request.frame_idx,
            )
            return

        value = request.future.result()
        if request.kind == RECOGNITION:
            if value is None:
                report.unresolved.append(request.identifier)
                return
            identity.apply_recognition(value)
            report.recognized.append(request.identifier)
            LOGGER.info(
                "Identity %s recognised as %s (person_id=%s)",
                request.identifier,
                value.name,
                value.person_id,
            )
        else:
            if value is None:
                return
            identity.apply_emotion(value)
            report.emotions.append(request.identifier)
