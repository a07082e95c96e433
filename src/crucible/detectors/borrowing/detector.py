"""
Borrowing Detector

Detects lifetime and ownership complexity:
- Named lifetimes that elision would cover
- Signatures with many independent lifetimes
- Self-referential structs without stable indirection
- Returned borrows merged from unrelated input lifetimes
- Owned parameters that are only read
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from crucible.detectors.borrowing.constants import (
    ANONYMOUS_LIFETIME,
    OVER_PARAMETERIZED_LIFETIMES,
    OWNED_BORROWABLE,
    OWNED_TO_AVOID_BORROW,
    READ_ONLY_KINDS,
    SELF_REFERENCE,
    STATIC_LIFETIME,
    UNNECESSARY_LIFETIME,
    UNSOUND_LIFETIME_MERGE,
)
from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.findings.domain.enums import Confidence, Domain
from crucible.model.domain.enums import StatementKind, TypeKind
from crucible.model.domain.models import (
    INDIRECTION_WRAPPERS,
    FunctionDecl,
    ImplBlock,
    LifetimeParam,
    StructDecl,
    TypeRef,
)


def _outlives_closure(lifetimes: Iterable[LifetimeParam]) -> Dict[str, Set[str]]:
    """Lifetime -> every lifetime it (transitively) outlives."""
    direct = {lt.name: set(lt.outlives) for lt in lifetimes}
    closure: Dict[str, Set[str]] = {}
    for name in direct:
        seen: Set[str] = set()
        frontier = list(direct[name])
        while frontier:
            current = frontier.pop()
            if current in seen:
                continue
            seen.add(current)
            frontier.extend(direct.get(current, ()))
        closure[name] = seen
    return closure


def _related_lifetimes(lifetimes: Sequence[LifetimeParam]) -> Set[str]:
    """Lifetimes taking part in any outlives relation."""
    related: Set[str] = set()
    for lt in lifetimes:
        if lt.outlives:
            related.add(lt.name)
            related.update(lt.outlives)
    return related


def _bound_lifetimes(function: FunctionDecl) -> List[str]:
    return [b for g in function.generics for b in g.bounds if b.startswith("'")]


def _unstable_references(type_ref: TypeRef, behind_indirection: bool = False) -> Iterable[TypeRef]:
    """References/pointers not reached through Box/Pin/Rc/Arc."""
    if type_ref.kind in (TypeKind.REFERENCE, TypeKind.POINTER) and not behind_indirection:
        yield type_ref
    nested = behind_indirection or (type_ref.kind == TypeKind.NAMED and type_ref.name in INDIRECTION_WRAPPERS)
    for arg in type_ref.args:
        yield from _unstable_references(arg, nested)


class BorrowingDetector(BaseDetector):
    """Detector for lifetime and borrowing complexity."""

    detector_id = "borrowing"
    domain = Domain.BORROWING

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (UNNECESSARY_LIFETIME, self._check_unnecessary_lifetime),
            (OVER_PARAMETERIZED_LIFETIMES, self._check_over_parameterized),
            (SELF_REFERENCE, self._check_self_reference),
            (UNSOUND_LIFETIME_MERGE, self._check_lifetime_merge),
            (OWNED_TO_AVOID_BORROW, self._check_owned_params),
        )

    def _check_unnecessary_lifetime(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNNECESSARY_LIFETIME):
            return
        for function in ctx.unit.functions(include_signatures=True):
            if not function.lifetimes:
                continue
            related = _related_lifetimes(function.lifetimes)
            input_uses = Counter(lt for p in function.params for lt in p.type.lifetimes())
            output_uses = Counter(function.returns.lifetimes() if function.returns else [])
            bound_uses = Counter(_bound_lifetimes(function))

            for lifetime in function.lifetimes:
                name = lifetime.name
                total = input_uses[name] + output_uses[name] + bound_uses[name]
                if name in related or total != 1:
                    continue
                ctx.emit(
                    UNNECESSARY_LIFETIME,
                    function.decl_id,
                    f"Lifetime {name} in '{function.name}' is used once and relates to nothing",
                    confidence=self._elision_confidence(function, name, input_uses, output_uses),
                    suggestion="Drop the named lifetime and let elision apply",
                )

    def _check_over_parameterized(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(OVER_PARAMETERIZED_LIFETIMES):
            return
        min_lifetimes = ctx.threshold(OVER_PARAMETERIZED_LIFETIMES, "min_lifetimes")

        declarations: List = list(ctx.unit.functions(include_signatures=True))
        declarations.extend(ctx.unit.structs())
        declarations.sort(key=lambda d: ctx.unit.order_key(d.decl_id))
        for decl in declarations:
            related = _related_lifetimes(decl.lifetimes)
            independent = [lt.name for lt in decl.lifetimes if lt.name not in related]
            if len(independent) < min_lifetimes:
                continue
            ctx.emit(
                OVER_PARAMETERIZED_LIFETIMES,
                decl.decl_id,
                f"'{decl.name}' declares {len(independent)} independent lifetimes ({', '.join(independent)})",
                confidence=Confidence.POSSIBLE,
                suggestion="Collapse lifetimes that never need to differ",
            )

    def _check_self_reference(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(SELF_REFERENCE):
            return
        for struct in ctx.unit.structs():
            if struct.is_pinned:
                continue
            offenders = [f.name for f in struct.fields if self._is_self_referential(struct, f.name)]
            if not offenders:
                continue
            ctx.emit(
                SELF_REFERENCE,
                struct.decl_id,
                f"'{struct.name}' borrows from itself through {', '.join(offenders)} "
                "without pinning or heap indirection",
                confidence=Confidence.DEFINITE,
                suggestion="Store an index/offset, pin the struct, or split owner and view",
            )

    def _check_lifetime_merge(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNSOUND_LIFETIME_MERGE):
            return
        for function in ctx.unit.functions():
            if function.returns is None or not self._returns_borrow(function.returns):
                continue

            params = {p.name: p for p in function.params}
            sources: List[str] = []
            last_offset: Optional[int] = None
            for offset, stmt in function.statements_of(StatementKind.RETURN):
                for name in stmt.attr("borrows") or ():
                    if name in params and name not in sources:
                        sources.append(name)
                        last_offset = offset
            if len(sources) < 2:
                continue

            closure = _outlives_closure(function.lifetimes)
            source_lifetimes = [self._param_lifetime(params[name].type) for name in sources]
            if self._share_bound(source_lifetimes, closure):
                continue
            ctx.emit(
                UNSOUND_LIFETIME_MERGE,
                function.decl_id,
                f"'{function.name}' may return a borrow of {' or '.join(sources)} "
                "whose lifetimes are unrelated",
                confidence=Confidence.LIKELY,
                offset=last_offset,
                suggestion="Tie the inputs to one lifetime or declare an outlives bound",
            )

    def _check_owned_params(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(OWNED_TO_AVOID_BORROW):
            return
        for function in ctx.unit.functions():
            if not function.statements or self._signature_is_fixed(ctx, function):
                continue
            for param in function.value_params:
                if param.type.kind != TypeKind.NAMED or param.type.name not in OWNED_BORROWABLE:
                    continue
                uses = [s for s in function.statements if s.target == param.name]
                if not uses or any(s.kind not in READ_ONLY_KINDS for s in uses):
                    continue
                ctx.emit(
                    OWNED_TO_AVOID_BORROW,
                    function.decl_id,
                    f"Parameter '{param.name}: {param.type}' of '{function.name}' is only read",
                    confidence=Confidence.POSSIBLE,
                    suggestion="Take a borrow (&str, &[T], &Path) instead",
                )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _elision_confidence(
        function: FunctionDecl,
        name: str,
        input_uses: Counter,
        output_uses: Counter,
    ) -> Confidence:
        if input_uses[name] and not output_uses[name]:
            return Confidence.LIKELY
        reference_inputs = [p for p in function.params if p.type.kind == TypeKind.REFERENCE]
        receiver = function.receiver
        if len(reference_inputs) == 1 or (receiver is not None and receiver.type.kind == TypeKind.REFERENCE):
            return Confidence.LIKELY
        return Confidence.POSSIBLE

    @staticmethod
    def _is_self_referential(struct: StructDecl, field_name: str) -> bool:
        field = next(f for f in struct.fields if f.name == field_name)
        references = list(_unstable_references(field.type))
        if not references:
            return False
        if field.borrows_from:
            sibling = next((f for f in struct.fields if f.name == field.borrows_from), None)
            # A heap-allocated sibling keeps its address when the struct moves
            if sibling is None or not (
                sibling.type.kind == TypeKind.NAMED and sibling.type.name in INDIRECTION_WRAPPERS
            ):
                return True
        return any(
            ref.referent is not None and (ref.referent.mentions(struct.name) or ref.referent.mentions("Self"))
            for ref in references
        )

    @staticmethod
    def _returns_borrow(returns: TypeRef) -> bool:
        return any(node.kind == TypeKind.REFERENCE for node in returns.walk())

    @staticmethod
    def _param_lifetime(type_ref: TypeRef) -> Optional[str]:
        lifetimes = [lt for lt in type_ref.lifetimes() if lt != ANONYMOUS_LIFETIME]
        return lifetimes[0] if lifetimes else None

    @staticmethod
    def _share_bound(lifetimes: List[Optional[str]], closure: Dict[str, Set[str]]) -> bool:
        """True when every pair of source lifetimes is equal or ordered by outlives."""
        for i, first in enumerate(lifetimes):
            for second in lifetimes[i + 1:]:
                # Elided input lifetimes are distinct from everything
                if first is None or second is None:
                    return False
                if first == second or STATIC_LIFETIME in (first, second):
                    continue
                if second in closure.get(first, set()) or first in closure.get(second, set()):
                    continue
                return False
        return True

    @staticmethod
    def _signature_is_fixed(ctx: DetectionContext, function: FunctionDecl) -> bool:
        owner = ctx.unit.get(function.owner) if function.owner else None
        return isinstance(owner, ImplBlock) and owner.trait_name is not None
