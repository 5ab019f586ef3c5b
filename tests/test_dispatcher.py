from concurrent.futures import Executor, Future
from typing import Callable, List, Tuple

import numpy as np

from facetrack.config import TrackerConfig
from facetrack.recognition.dispatcher import MetadataDispatcher
from facetrack.recognition.matcher import FacebankRecognizer
from facetrack.recognition.services import ServiceError
from facetrack.tracking.identity import sequential_identifiers
from facetrack.tracking.lifecycle import IdentityTracker
from facetrack.types import Detection, EmotionScores, FaceBox, FacebankEntry, RecognitionResult

CROP = np.zeros((112, 112, 3), dtype=np.uint8)


class DeferredExecutor(Executor):
    """Queues submissions until run_all() is called."""

    def __init__(self) -> None:
        self.queue: List[Tuple[Future, Callable, tuple]] = []

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        self.queue.append((future, fn, args))
        return future

    def run_all(self) -> None:
        queue, self.queue = self.queue, []
        for future, fn, args in queue:
            try:
                future.set_result(fn(*args))
            except Exception as exc:
                future.set_exception(exc)


class FakeRecognizer:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls: List[str] = []

    def recognize(self, identifier, face_image):
        self.calls.append(identifier)
        if self.error is not None:
            raise self.error
        return self.result


class FakeEmotion:
    def __init__(self, scores, error=None) -> None:
        self.scores = scores
        self.error = error
        self.calls: List[str] = []

    def score(self, identifier, face_image):
        self.calls.append(identifier)
        if self.error is not None:
            raise self.error
        return self.scores


class FailingEmbedder:
    def embed(self, face_image):
        raise RuntimeError("inference session closed")


def make_tracker(**overrides) -> IdentityTracker:
    config = TrackerConfig(confirm_frames=1, **overrides)
    tracker = IdentityTracker(config, identifier_factory=sequential_identifiers("id"))
    tracker.update([Detection(frame_idx=0, bbox=FaceBox(0, 0, 10, 10))], frame_idx=0)
    return tracker


def test_recognition_result_applied_to_live_identity():
    tracker = make_tracker()
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(RecognitionResult(name="Alice", person_id="p-1"))
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    assert dispatcher.schedule(0, {"id-1": CROP}) == 1
    assert dispatcher.collect().recognized == []
    executor.run_all()
    report = dispatcher.collect()

    assert report.recognized == ["id-1"]
    identity = tracker.get("id-1")
    assert (identity.name, identity.person_id) == ("Alice", "p-1")
    assert dispatcher.pending == 0


def test_no_duplicate_requests_while_in_flight():
    tracker = make_tracker(recognize_every_n=1)
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(None)
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    dispatcher.schedule(1, {"id-1": CROP})
    assert len(executor.queue) == 1


def test_identified_identity_is_not_resubmitted():
    tracker = make_tracker(recognize_every_n=1)
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(RecognitionResult(name="Alice", person_id="p-1"))
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    executor.run_all()
    dispatcher.collect()
    assert dispatcher.schedule(5, {"id-1": CROP}) == 0


def test_unresolved_recognition_retried_after_interval():
    tracker = make_tracker(recognize_every_n=10)
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(None)
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    executor.run_all()
    report = dispatcher.collect()
    assert report.unresolved == ["id-1"]
    assert tracker.get("id-1").name is None

    assert dispatcher.schedule(5, {"id-1": CROP}) == 0
    assert dispatcher.schedule(10, {"id-1": CROP}) == 1


def test_stale_results_for_lost_identity_are_discarded():
    tracker = make_tracker(max_missed_frames=0)
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(RecognitionResult(name="Alice", person_id="p-1"))
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)
    dispatcher.schedule(0, {"id-1": CROP})

    # Face lost, and a new face appears in the same place.
    tracker.update([], frame_idx=1)
    tracker.update([Detection(frame_idx=2, bbox=FaceBox(0, 0, 10, 10))], frame_idx=2)
    executor.run_all()
    report = dispatcher.collect()

    assert report.discarded == 1
    assert report.recognized == []
    assert tracker.get("id-2").name is None


def test_service_failure_leaves_metadata_unset():
    tracker = make_tracker()
    executor = DeferredExecutor()
    recognizer = FakeRecognizer(error=ServiceError("timeout"))
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    executor.run_all()
    report = dispatcher.collect()

    assert report.failed == 1
    identity = tracker.get("id-1")
    assert (identity.name, identity.person_id, identity.appearance) == (None, None, None)


def test_emotion_refreshes_independently_of_recognition():
    tracker = make_tracker(emotion_every_n=2)
    executor = DeferredExecutor()
    emotion = FakeEmotion(EmotionScores(happiness=0.8, neutral=0.2))
    dispatcher = MetadataDispatcher(tracker, emotion=emotion, executor=executor)

    for frame_idx in range(5):
        dispatcher.schedule(frame_idx, {"id-1": CROP})
        executor.run_all()
        dispatcher.collect()

    assert emotion.calls == ["id-1"] * 3
    identity = tracker.get("id-1")
    assert identity.emotion_scores.dominant == "happiness"
    assert identity.name is None


def test_emotion_failure_or_none_keeps_previous_scores():
    tracker = make_tracker(emotion_every_n=1)
    executor = DeferredExecutor()
    first = FakeEmotion(EmotionScores(anger=0.9, neutral=0.1))
    dispatcher = MetadataDispatcher(tracker, emotion=first, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    executor.run_all()
    assert dispatcher.collect().emotions == ["id-1"]
    identity = tracker.get("id-1")
    first_scores = identity.emotion_scores
    assert first_scores.dominant == "anger"

    dispatcher.emotion = FakeEmotion(None, error=ServiceError("emotion backend down"))
    dispatcher.schedule(1, {"id-1": CROP})
    executor.run_all()
    failed_report = dispatcher.collect()
    assert failed_report.failed == 1
    assert failed_report.emotions == []
    assert identity.emotion_scores is first_scores

    dispatcher.emotion = FakeEmotion(None)
    dispatcher.schedule(2, {"id-1": CROP})
    executor.run_all()
    empty_report = dispatcher.collect()
    assert empty_report.failed == 0
    assert empty_report.emotions == []
    assert dispatcher.emotion.calls == ["id-1"]
    assert identity.emotion_scores is first_scores


def test_embedder_failure_counts_as_failed_recognition():
    tracker = make_tracker()
    executor = DeferredExecutor()
    recognizer = FacebankRecognizer(
        {"Alice": FacebankEntry("Alice", "p-alice", np.array([1.0, 0.0], dtype=np.float32))},
        FailingEmbedder(),
    )
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, executor=executor)

    dispatcher.schedule(0, {"id-1": CROP})
    executor.run_all()
    report = dispatcher.collect()

    assert report.failed == 1
    assert report.recognized == []
    assert tracker.get("id-1").name is None


def test_unknown_identifiers_are_ignored():
    tracker = make_tracker()
    executor = DeferredExecutor()
    dispatcher = MetadataDispatcher(tracker, recognition=FakeRecognizer(None), executor=executor)
    assert dispatcher.schedule(0, {"missing": CROP}) == 0


def test_shutdown_with_thread_pool_applies_results():
    tracker = make_tracker()
    recognizer = FakeRecognizer(RecognitionResult(name="Dana", person_id="p-4"))
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer)
    dispatcher.schedule(0, {"id-1": CROP})
    report = dispatcher.shutdown(wait=True)
    assert report.recognized == ["id-1"]
    assert tracker.get("id-1").name == "Dana"
