"""Structural model: immutable declarations of a compilation unit."""
