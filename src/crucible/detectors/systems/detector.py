"""
Systems Detector

Detects low-level memory and FFI hazards:
- Unsafe operations without a stated or checked precondition
- Dereferences of pointers whose owner is already gone
- Unguarded pointer arithmetic and misaligned casts
- Borrowed pointers handed to FFI, overflowing allocation sizes
- Safety claims contradicted by how the pointer was built
"""

from typing import Optional, Sequence, Tuple

from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.detectors.systems.constants import (
    ALLOCATION_OVERFLOW,
    CHECKED_ARITH_ATTRS,
    DANGLING_FFI_CAPTURE,
    MISALIGNED_CAST,
    MISLEADING_SAFETY,
    SAFETY_ATTRS,
    UNDOCUMENTED_UNSAFE,
    UNGUARDED_POINTER_ARITHMETIC,
    UNVALIDATED_UNSAFE,
    USE_AFTER_FREE,
)
from crucible.findings.domain.enums import Confidence, Domain
from crucible.model.domain.enums import UNSAFE_STATEMENT_KINDS, StatementKind
from crucible.model.domain.models import FunctionDecl, Statement


def is_documented(function: FunctionDecl, offset: int) -> bool:
    """A precondition is stated on the statement, just before it, or in the function's # Safety doc."""
    stmt = function.statements[offset]
    if any(stmt.attr(key) for key in SAFETY_ATTRS) or function.has_safety_doc:
        return True
    if offset > 0 and function.statements[offset - 1].kind == StatementKind.SAFETY_COMMENT:
        return True
    return any(
        earlier.kind == StatementKind.SAFETY_COMMENT and earlier.target is not None and earlier.target == stmt.target
        for earlier in function.statements[:offset]
    )


def guard_before(function: FunctionDecl, offset: int, pointer: Optional[str], check: Optional[str] = None) -> bool:
    """A guard on the pointer runs before offset (optionally one checking a specific property)."""
    if pointer is None:
        return False
    for stmt in function.statements[:offset]:
        if stmt.kind != StatementKind.GUARD or stmt.target != pointer:
            continue
        if check is None or check in (stmt.attr("checks") or ()):
            return True
    return False


def _delegates_validation(function: FunctionDecl) -> bool:
    """unsafe fn with a # Safety section moves the obligation to its callers."""
    return function.is_unsafe and function.has_safety_doc


class SystemsDetector(BaseDetector):
    """Detector for unsafe memory and FFI usage."""

    detector_id = "systems"
    domain = Domain.SYSTEMS

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (UNDOCUMENTED_UNSAFE, self._check_unsafe_preconditions),
            (USE_AFTER_FREE, self._check_use_after_free),
            (UNGUARDED_POINTER_ARITHMETIC, self._check_pointer_arithmetic),
            (DANGLING_FFI_CAPTURE, self._check_ffi_capture),
            (ALLOCATION_OVERFLOW, self._check_allocation_overflow),
            (MISLEADING_SAFETY, self._check_misleading_safety),
            (MISALIGNED_CAST, self._check_misaligned_cast),
        )

    def _check_unsafe_preconditions(self, ctx: DetectionContext) -> None:
        """undocumented-unsafe and unvalidated-unsafe share one pass."""
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(*UNSAFE_STATEMENT_KINDS):
                operation = f"{stmt.kind.value} of '{stmt.target or '?'}'"
                if not is_documented(function, offset):
                    if ctx.enabled(UNDOCUMENTED_UNSAFE):
                        ctx.emit(
                            UNDOCUMENTED_UNSAFE,
                            function.decl_id,
                            f"Unsafe {operation} has no stated precondition",
                            confidence=Confidence.DEFINITE,
                            offset=offset,
                            suggestion="Write a SAFETY comment naming the invariant relied on",
                        )
                elif ctx.enabled(UNVALIDATED_UNSAFE) and not guard_before(function, offset, stmt.target):
                    # Callers of a documented unsafe fn may uphold the contract
                    delegated = _delegates_validation(function)
                    ctx.emit(
                        UNVALIDATED_UNSAFE,
                        function.decl_id,
                        f"Unsafe {operation} documents a precondition that '{function.name}' never checks",
                        confidence=Confidence.POSSIBLE if delegated else Confidence.LIKELY,
                        offset=offset,
                        suggestion="Check the precondition at entry or make the function unsafe",
                    )

    def _check_use_after_free(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(USE_AFTER_FREE):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.PTR_DEREF, StatementKind.PTR_ARITH):
                if not stmt.target:
                    continue
                tag = function.ownership_of(stmt.target, offset)
                if tag is None or not tag.is_stale_at(offset):
                    continue
                ctx.emit(
                    USE_AFTER_FREE,
                    function.decl_id,
                    f"Pointer '{stmt.target}' is used after its owner '{tag.owner}' "
                    f"was released at {tag.released_at}",
                    confidence=Confidence.DEFINITE,
                    offset=offset,
                    suggestion="Keep the owner alive for as long as the pointer is used",
                )

    def _check_pointer_arithmetic(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNGUARDED_POINTER_ARITHMETIC):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.PTR_ARITH):
                if stmt.flag("checked") or guard_before(function, offset, stmt.target):
                    continue
                ctx.emit(
                    UNGUARDED_POINTER_ARITHMETIC,
                    function.decl_id,
                    f"Offset arithmetic on '{stmt.target or '?'}' has no bounds check",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Check the offset against the allocation length first",
                )

    def _check_ffi_capture(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(DANGLING_FFI_CAPTURE):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.FFI_CALL):
                if not stmt.flag("borrowed") or stmt.flag("lifetime_tied"):
                    continue
                ctx.emit(
                    DANGLING_FFI_CAPTURE,
                    function.decl_id,
                    f"FFI call '{stmt.target or '?'}' receives a pointer into borrowed data "
                    "with nothing tying its lifetime",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Pass owned memory or tie the handle's lifetime to the borrow",
                )

    def _check_allocation_overflow(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(ALLOCATION_OVERFLOW):
            return
        for function in ctx.unit.functions():
            allocations = function.statements_of(StatementKind.ALLOC)
            for offset, stmt in function.statements_of(StatementKind.ARITH_MUL):
                if any(stmt.flag(key) for key in CHECKED_ARITH_ATTRS):
                    continue
                feeds = stmt.flag("feeds_alloc") or any(
                    later > offset and alloc.attr("size") == stmt.target for later, alloc in allocations
                )
                if not feeds:
                    continue
                ctx.emit(
                    ALLOCATION_OVERFLOW,
                    function.decl_id,
                    f"Unchecked multiplication '{stmt.target or '?'}' feeds an allocation size",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Use checked_mul and reject overflowing sizes",
                )

    def _check_misleading_safety(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(MISLEADING_SAFETY):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.PTR_DEREF):
                if not stmt.target or not is_documented(function, offset):
                    continue
                tag = function.ownership_of(stmt.target, offset)
                if tag is None or not tag.from_null or guard_before(function, offset, stmt.target):
                    continue
                ctx.emit(
                    MISLEADING_SAFETY,
                    function.decl_id,
                    f"Safety precondition for '{stmt.target}' is contradicted: "
                    f"it was built from a null/zeroed value at {tag.created_at}",
                    confidence=Confidence.DEFINITE,
                    offset=offset,
                    suggestion="Initialize the pointer properly or fix the safety comment",
                )

    def _check_misaligned_cast(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(MISALIGNED_CAST):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.PTR_CAST):
                if not self._widens_alignment(stmt):
                    continue
                if stmt.flag("aligned") or guard_before(function, offset, stmt.target, check="align"):
                    continue
                ctx.emit(
                    MISALIGNED_CAST,
                    function.decl_id,
                    f"Cast of '{stmt.target or '?'}' to {stmt.attr('to', 'a wider type')} assumes alignment "
                    "that is never checked",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Check align_offset or use read_unaligned",
                )

    @staticmethod
    def _widens_alignment(stmt: Statement) -> bool:
        if stmt.flag("widens_alignment"):
            return True
        source, target = stmt.attr("from_align"), stmt.attr("to_align")
        return isinstance(source, int) and isinstance(target, int) and target > source
