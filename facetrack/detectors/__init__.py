"""Face detectors producing per-frame Detection lists."""
