"""Domain detectors. One detector per analysis domain."""
