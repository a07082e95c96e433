"""Type-system detector - generics and trait design."""
