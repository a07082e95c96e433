"""Type System Detection Constants"""

OVER_CONSTRAINED_GENERIC = "over-constrained-generic"
UNDER_CONSTRAINED_GENERIC = "under-constrained-generic"
UNNECESSARY_DYNAMIC_DISPATCH = "unnecessary-dynamic-dispatch"
SINGLE_IMPLEMENTOR_TRAIT = "single-implementor-trait"
EXCESSIVE_TYPE_PARAMETERS = "excessive-type-parameters"

# Marker/auto traits that constrain without being "used" by a call
MARKER_BOUNDS: frozenset[str] = frozenset({"Send", "Sync", "Unpin", "Sized", "?Sized", "Copy"})

PHANTOM_TYPES: frozenset[str] = frozenset({"PhantomData"})

# Trait tags that justify a single implementor
BOUNDARY_TAGS: frozenset[str] = frozenset({"ffi", "plugin", "boundary"})
