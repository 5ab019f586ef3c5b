"""Command-line entrypoints for the face identity tracker."""
