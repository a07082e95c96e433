"""Systems Detection Constants"""

UNDOCUMENTED_UNSAFE = "undocumented-unsafe"
UNVALIDATED_UNSAFE = "unvalidated-unsafe"
USE_AFTER_FREE = "use-after-free"
UNGUARDED_POINTER_ARITHMETIC = "unguarded-pointer-arithmetic"
DANGLING_FFI_CAPTURE = "dangling-ffi-capture"
ALLOCATION_OVERFLOW = "allocation-overflow"
MISLEADING_SAFETY = "misleading-safety"
MISALIGNED_CAST = "misaligned-cast"

# Statement attributes that carry a stated precondition
SAFETY_ATTRS: tuple[str, ...] = ("safety", "precondition")

# Multiplication forms that cannot overflow silently
CHECKED_ARITH_ATTRS: tuple[str, ...] = ("checked", "saturating")
