"""Per-frame face identity tracking."""
