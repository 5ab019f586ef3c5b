#!/usr/bin/env python3
"""CLI for building the facebank that names tracked identities."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from facetrack.detectors.face_retina import RetinaFaceDetector
from facetrack.io_utils import setup_logging
from facetrack.recognition.embed_arcface import ArcFaceEmbedder
from facetrack.recognition.facebank import FacebankArtifacts, build_facebank, load_facebank


LOGGER = logging.getLogger("scripts.facebank")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the facebank of named people for the tracker")
    parser.add_argument(
        "--facebank-dir",
        type=Path,
        default=Path("data/facebank"),
        help="Directory containing labeled face images (one subdirectory per person)",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("data"),
        help="Directory where facebank artifacts will be written",
    )
    parser.add_argument("--arcface-model", type=str, default=None, help="Optional ArcFace model override")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="ONNX execution providers (overrides platform defaults)",
    )
    parser.add_argument(
        "--person-ids-csv",
        type=Path,
        default=None,
        help="Where to write the label -> person_id table (defaults to <output-dir>/facebank_person_ids.csv)",
    )
    return parser.parse_args(argv)


def person_id_table(parquet_path: Path) -> pd.DataFrame:
    """Label, person_id and sample count for every facebank entry."""
    counts = pd.read_parquet(parquet_path, columns=["label", "count"]).set_index("label")["count"]
    rows = [
        {"label": label, "person_id": entry.person_id, "count": int(counts.get(label, 0))}
        for label, entry in load_facebank(parquet_path).items()
    ]
    return pd.DataFrame(rows, columns=["label", "person_id", "count"]).sort_values("label").reset_index(drop=True)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging()

    embedder = ArcFaceEmbedder(model_path=args.arcface_model, providers=args.providers)
    artifacts: FacebankArtifacts = build_facebank(
        facebank_dir=args.facebank_dir,
        output_dir=args.output_dir,
        embedder=embedder,
        aligner=RetinaFaceDetector,
    )

    table = person_id_table(artifacts.parquet_path)
    person_ids_csv = args.person_ids_csv or args.output_dir / "facebank_person_ids.csv"
    table.to_csv(person_ids_csv, index=False)
    for row in table.to_dict("records"):
        LOGGER.info("Facebank person %s -> %s (%d samples)", row["label"], row["person_id"], row["count"])
    LOGGER.info(
        "Facebank built: parquet=%s meta=%s person_ids=%s",
        artifacts.parquet_path,
        artifacts.meta_json_path,
        person_ids_csv,
    )


if __name__ == "__main__":
    main()
