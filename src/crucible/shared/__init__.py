"""Shared kernel: exceptions, base models, settings and logging."""
