"""Concurrency detector - async and shared-state hazards."""
