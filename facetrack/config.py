"""Tracker configuration loaded from YAML with CLI overrides."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from facetrack.io_utils import load_yaml

LOGGER = logging.getLogger("facetrack.config")


@dataclass
class TrackerConfig:
    # Lifecycle
    confirm_frames: int = 3
    max_missed_frames: int = 5
    max_match_distance: Optional[float] = None
    min_face_px: float = 0.0
    # Metadata dispatch
    recognize_every_n: int = 15
    emotion_every_n: int = 5
    workers: int = 2
    # Recognition
    similarity_th: float = 0.45
    min_margin: float = 0.05
    # Detection / IO
    det_size: tuple = (640, 640)
    face_conf_th: float = 0.5
    stride: int = 1

    def __post_init__(self) -> None:
        if self.confirm_frames < 1:
            raise ValueError("confirm_frames must be >= 1")
        if self.max_missed_frames < 0:
            raise ValueError("max_missed_frames must be >= 0")
        if self.max_match_distance is not None and self.max_match_distance < 0:
            raise ValueError("max_match_distance must be >= 0 or null")
        for name in ("recognize_every_n", "emotion_every_n", "workers", "stride"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")
        self.det_size = tuple(int(v) for v in self.det_size)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrackerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown tracker config keys: {unknown}")
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["det_size"] = list(self.det_size)
        return payload


def load_config(path: Optional[Path]) -> TrackerConfig:
    """Load a TrackerConfig from YAML; missing path yields defaults."""
    if path is None or not path.exists():
        if path is not None:
            LOGGER.warning("Tracker config %s not found; using defaults", path)
        return TrackerConfig()
    return TrackerConfig.from_dict(load_yaml(path))


def resolve_setting(cli_value: Any, cfg: Mapping[str, Any], key: str, default: Any) -> Any:
    """CLI flag overrides config; config overrides the built-in default."""
    if cli_value is not None:
        return cli_value
    return cfg.get(key, default)
