"""
Core package init for the face identity tracker.

Tracks faces from frame to frame and attaches recognition and emotion metadata
to each tracked identity.
"""

__all__ = [
    "config",
    "detectors",
    "geometry",
    "recognition",
    "tracking",
    "io_utils",
    "types",
]
