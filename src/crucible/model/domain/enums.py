"""
Structural model enums.

Values are the lowercase identifiers accepted in raw unit files.
"""

from enum import Enum


class DeclarationKind(str, Enum):
    """Tag of a declaration variant."""

    STRUCT = "struct"
    TRAIT = "trait"
    IMPL = "impl"
    FUNCTION = "function"
    ENUM = "enum"


class TypeKind(str, Enum):
    """Shape of a type descriptor."""

    NAMED = "named"  # Vec<T>, Database, serde_json::Value
    PRIMITIVE = "primitive"  # u32, bool, str
    REFERENCE = "reference"  # &'a T, &mut T
    POINTER = "pointer"  # *const T, *mut T
    TRAIT_OBJECT = "trait_object"  # dyn Trait
    IMPL_TRAIT = "impl_trait"  # impl Trait
    TUPLE = "tuple"  # (A, B), ()
    SLICE = "slice"  # [T], [T; N]
    LIFETIME = "lifetime"  # 'a as a generic argument


class StatementKind(str, Enum):
    """
    Coarse statement kinds.

    Enough to match rules without executing the analyzed code.
    """

    # Control flow
    CALL = "call"
    BRANCH = "branch"
    LOOP_START = "loop_start"
    LOOP_END = "loop_end"
    SCOPE_END = "scope_end"
    RETURN = "return"
    READ = "read"
    MOVE = "move"

    # Concurrency
    LOCK_ACQUIRE = "lock_acquire"
    LOCK_RELEASE = "lock_release"
    SUSPEND = "suspend"
    SPAWN = "spawn"
    JOIN = "join"
    BOUND = "bound"  # semaphore permit, join-set limit, buffer_unordered(n)
    SHARED_MUTATE = "shared_mutate"
    SYNC = "sync"  # barrier, atomic fence, message hand-off
    IO = "io"
    CHANNEL_CREATE = "channel_create"
    CHANNEL_SEND = "channel_send"
    CHANNEL_RECV = "channel_recv"
    SELECT_BRANCH = "select_branch"
    CLONE = "clone"
    COLLECT = "collect"

    # Low-level memory / FFI
    PTR_CREATE = "ptr_create"
    PTR_DEREF = "ptr_deref"
    PTR_ARITH = "ptr_arith"
    PTR_CAST = "ptr_cast"
    TRANSMUTE = "transmute"
    LAYOUT_ASSUMPTION = "layout_assumption"
    DROP = "drop"
    FFI_CALL = "ffi_call"
    ARITH_MUL = "arith_mul"
    ALLOC = "alloc"
    GUARD = "guard"
    SAFETY_COMMENT = "safety_comment"

    # Error handling
    UNWRAP = "unwrap"
    ERROR_CONVERT = "error_convert"
    ERROR_DISCARD = "error_discard"
    RERAISE = "reraise"
    RETRY = "retry"
    LOG = "log"


# Operations that need a documented precondition
UNSAFE_STATEMENT_KINDS = frozenset({
    StatementKind.PTR_DEREF,
    StatementKind.PTR_ARITH,
    StatementKind.PTR_CAST,
    StatementKind.TRANSMUTE,
    StatementKind.LAYOUT_ASSUMPTION,
})

ERROR_STATEMENT_KINDS = frozenset({
    StatementKind.UNWRAP,
    StatementKind.ERROR_CONVERT,
    StatementKind.ERROR_DISCARD,
    StatementKind.RERAISE,
    StatementKind.RETRY,
})
