"""Borrowing Detection Constants"""

from crucible.model.domain.enums import StatementKind

UNNECESSARY_LIFETIME = "unnecessary-lifetime"
OVER_PARAMETERIZED_LIFETIMES = "over-parameterized-lifetimes"
SELF_REFERENCE = "self-reference"
UNSOUND_LIFETIME_MERGE = "unsound-lifetime-merge"
OWNED_TO_AVOID_BORROW = "owned-to-avoid-borrow"

# Owned types with a cheap borrowed counterpart (&str, &[T], &Path, &T)
OWNED_BORROWABLE: frozenset[str] = frozenset({"String", "Vec", "PathBuf", "OsString", "Box"})

# Statement kinds that only observe a value
READ_ONLY_KINDS: frozenset[StatementKind] = frozenset({StatementKind.READ, StatementKind.CALL, StatementKind.LOG})

STATIC_LIFETIME = "'static"
ANONYMOUS_LIFETIME = "'_"
