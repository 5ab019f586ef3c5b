#!/usr/bin/env python3
"""CLI for running RetinaFace detection + identity tracking + facebank recognition."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, List, Optional

import cv2
import numpy as np
import pandas as pd

from facetrack.config import TrackerConfig, load_config, resolve_setting
from facetrack.detectors.face_retina import RetinaFaceDetector
from facetrack.io_utils import dump_json, dump_yaml, frame_timestamp_ms, run_outputs, setup_logging
from facetrack.recognition.dispatcher import MetadataDispatcher
from facetrack.recognition.embed_arcface import ArcFaceEmbedder
from facetrack.recognition.facebank import load_facebank
from facetrack.recognition.matcher import FacebankRecognizer
from facetrack.tracking.identity import sequential_identifiers
from facetrack.tracking.lifecycle import IdentityTracker, TrackRecord


LOGGER = logging.getLogger("scripts.run_tracker")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track faces through a video and attach identities")
    parser.add_argument("video", type=Path, help="Input video file")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("data/outputs"),
        help="Output directory root",
    )
    parser.add_argument(
        "--tracker-config",
        type=Path,
        default=Path("configs/tracker.yaml"),
        help="Tracker configuration YAML",
    )
    parser.add_argument(
        "--facebank-parquet",
        type=Path,
        default=None,
        help="Facebank parquet file; recognition is skipped when omitted",
    )
    parser.add_argument("--arcface-model", type=str, default=None, help="Optional ArcFace model override")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="ONNX execution providers (overrides platform defaults)",
    )
    parser.add_argument("--face-det-threshold", type=float, default=None)
    parser.add_argument("--similarity-th", type=float, default=None, help="Override recognition threshold")
    parser.add_argument("--max-missed-frames", type=int, default=None)
    parser.add_argument("--max-match-distance", type=float, default=None)
    parser.add_argument("--stride", type=int, default=None, help="Override frame sampling stride")
    parser.add_argument(
        "--deterministic-ids",
        action="store_true",
        help="Use sequential identity ids instead of random UUIDs",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> TrackerConfig:
    """Merge CLI overrides onto the YAML tracker config."""
    base = load_config(args.tracker_config).to_dict()
    overrides = {
        "face_conf_th": args.face_det_threshold,
        "similarity_th": args.similarity_th,
        "max_missed_frames": args.max_missed_frames,
        "max_match_distance": args.max_match_distance,
        "stride": args.stride,
    }
    for key, value in overrides.items():
        base[key] = resolve_setting(value, base, key, None)
    return TrackerConfig.from_dict(base)


def _record_summary(record: TrackRecord) -> Dict:
    identity = record.identity
    return {
        "identifier": identity.identifier,
        "name": identity.name,
        "person_id": identity.person_id,
        "first_frame": record.first_frame,
        "last_seen_frame": record.last_seen_frame,
        "hits": record.hits,
        "status": record.status.value,
        "emotion": identity.emotion_scores.as_dict() if identity.emotion_scores else None,
    }


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()
    config = build_config(args)

    detector = RetinaFaceDetector(providers=args.providers, det_size=config.det_size, det_thresh=config.face_conf_th)
    recognizer = None
    if args.facebank_parquet is not None:
        embedder = ArcFaceEmbedder(model_path=args.arcface_model, providers=args.providers)
        recognizer = FacebankRecognizer(
            load_facebank(args.facebank_parquet),
            embedder,
            similarity_th=config.similarity_th,
            min_margin=config.min_margin,
        )
    else:
        LOGGER.warning("No facebank supplied; identities will stay unnamed")

    id_factory = sequential_identifiers("face") if args.deterministic_ids else None
    tracker = IdentityTracker(config, identifier_factory=id_factory)
    dispatcher = MetadataDispatcher(tracker, recognition=recognizer, config=config)

    cap = cv2.VideoCapture(str(args.video))
    if not cap.isOpened():
        raise RuntimeError(f"Unable to open video {args.video}")
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
    frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT)) or 0
    LOGGER.info(
        "Running tracker video=%s fps=%.2f frames=%s stride=%d",
        args.video,
        fps,
        frame_count or "unknown",
        config.stride,
    )

    progress_step = max(1, frame_count // 20) if frame_count else 500
    frame_rows: List[Dict] = []
    finished: List[TrackRecord] = []
    frame_idx = -1
    while True:
        ret, frame = cap.read()
        if not ret:
            break
        frame_idx += 1
        if frame_idx % config.stride != 0:
            continue

        detections = detector.detect(frame, frame_idx)
        update = tracker.update(detections, frame_idx)
        finished.extend(update.removed)

        crops: Dict[str, np.ndarray] = {}
        for match in update.matches:
            det = match.detection
            crops[match.identifier] = detector.align_to_112(frame, det.landmarks, det.bbox)
        dispatcher.schedule(frame_idx, crops)
        dispatcher.collect()

        for identity in tracker.live():
            box = identity.bounding_box
            frame_rows.append(
                {
                    "frame_idx": frame_idx,
                    "timestamp_ms": frame_timestamp_ms(frame_idx, fps),
                    "identifier": identity.identifier,
                    "status": tracker.record(identity.identifier).status.value,
                    "x": box.x,
                    "y": box.y,
                    "width": box.width,
                    "height": box.height,
                    "surface_area": identity.surface_area,
                    "name": identity.name,
                    "person_id": identity.person_id,
                }
            )

        if frame_idx % progress_step == 0:
            largest = tracker.largest()
            LOGGER.info(
                "Frame %d: live=%d pending=%d focus=%s",
                frame_idx,
                len(tracker),
                dispatcher.pending,
                largest.name or largest.identifier if largest else None,
            )

    cap.release()
    report = dispatcher.shutdown(wait=True)
    if report.discarded:
        LOGGER.info("Discarded %d late results for lost identities", report.discarded)
    finished.extend(tracker.flush())

    outputs = run_outputs(args.output_dir, args.video)

    frames_df = pd.DataFrame(frame_rows)
    frames_df.to_csv(outputs.frames_csv, index=False)
    dump_json(outputs.identities_json, [_record_summary(record) for record in finished])
    dump_yaml(outputs.config_yaml, config.to_dict())

    named = sum(1 for record in finished if record.identity.name)
    LOGGER.info(
        "Track summary: identities=%d named=%d frames=%s identities_json=%s",
        len(finished),
        named,
        outputs.frames_csv,
        outputs.identities_json,
    )


if __name__ == "__main__":
    main()
