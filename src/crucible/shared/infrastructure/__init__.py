"""Process settings and structured logging."""
