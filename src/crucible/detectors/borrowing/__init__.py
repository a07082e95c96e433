"""Borrowing detector - lifetime and ownership complexity."""
