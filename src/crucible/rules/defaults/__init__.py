"""Bundled rule catalog (rules.yaml)."""
