"""Error-handling detector - propagation, context and taxonomy quality."""
