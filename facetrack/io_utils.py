"""I/O helpers for tracker runs: logging, YAML config, JSON reports, output naming."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import numpy as np
import yaml

LOGGER = logging.getLogger("facetrack.io")


@dataclass
class RunOutputs:
    """Files written for one tracked video."""

    frames_csv: Path
    identities_json: Path
    config_yaml: Path


def ensure_dir(path: Path) -> Path:
    """Create directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def run_outputs(output_root: Path, video_path: Path) -> RunOutputs:
    """Create ``output_root/<video stem>/`` and name the run's output files."""
    stem = video_path.stem
    output_dir = ensure_dir(output_root / stem)
    return RunOutputs(
        frames_csv=output_dir / f"{stem}-frames.csv",
        identities_json=output_dir / f"{stem}-identities.json",
        config_yaml=output_dir / f"{stem}-tracker.yaml",
    )


def frame_timestamp_ms(frame_idx: int, fps: float) -> float:
    """Timestamp of a frame; non-positive fps falls back to 30."""
    return frame_idx / (fps if fps > 0 else 30.0) * 1000.0


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    LOGGER.debug("Loaded YAML config %s -> keys=%s", path, list(data.keys()))
    return data


def dump_yaml(path: Path, data: Dict[str, Any]) -> None:
    """Write YAML to disk."""
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, sort_keys=False)
    LOGGER.debug("Wrote YAML config %s", path)


def _json_default(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def dump_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write a JSON report; dataclasses, enums and numpy values are converted."""
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=indent, default=_json_default)
    LOGGER.debug("Wrote JSON file %s", path)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure application logging if not already configured."""
    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
