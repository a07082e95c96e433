"""Crucible - rule-based static analysis over a structural model of Rust-like code."""

__version__ = "0.1.0"
