"""Architecture detector - composition and interface design."""
