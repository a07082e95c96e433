"""
Type System Detector

Detects generic and trait design issues:
- Generic parameters with more bounds than the body uses
- Unbounded parameters that are only passed through
- Trait objects where no heterogeneous collection exists
- Private traits with a single implementor
- Declarations generic over too many types
"""

from typing import Iterable, List, Sequence, Set, Tuple

from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.detectors.type_system.constants import (
    BOUNDARY_TAGS,
    EXCESSIVE_TYPE_PARAMETERS,
    MARKER_BOUNDS,
    OVER_CONSTRAINED_GENERIC,
    PHANTOM_TYPES,
    SINGLE_IMPLEMENTOR_TRAIT,
    UNDER_CONSTRAINED_GENERIC,
    UNNECESSARY_DYNAMIC_DISPATCH,
)
from crucible.findings.domain.enums import Confidence, Domain
from crucible.model.domain.enums import StatementKind, TypeKind
from crucible.model.domain.models import FunctionDecl, StructDecl, TypeRef


def _bound_key(bound: str) -> str:
    """serde::Serialize<'de> -> Serialize"""
    return bound.split("<")[0].split("::")[-1].strip()


def _used_bounds(function: FunctionDecl) -> Set[str]:
    used: Set[str] = set()
    for _, stmt in function.statements_of(StatementKind.CALL):
        bound = stmt.attr("bound")
        if not bound:
            continue
        names = [bound] if isinstance(bound, str) else list(bound)
        used.update(_bound_key(b) for b in names)
    return used


def _occurrences(type_ref: TypeRef, name: str, parents: Tuple[str, ...] = ()) -> Iterable[Tuple[str, ...]]:
    """Yield the chain of enclosing named types for every bare occurrence of a type parameter."""
    if type_ref.kind == TypeKind.NAMED and type_ref.name == name and not type_ref.args:
        yield parents
        return
    child_parents = parents + (type_ref.name,) if type_ref.kind == TypeKind.NAMED else parents + (type_ref.kind.value,)
    for arg in type_ref.args:
        yield from _occurrences(arg, name, child_parents)


class TypeSystemDetector(BaseDetector):
    """Detector for generic and trait design."""

    detector_id = "type_system"
    domain = Domain.TYPE_SYSTEM

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (OVER_CONSTRAINED_GENERIC, self._check_over_constrained),
            (UNDER_CONSTRAINED_GENERIC, self._check_under_constrained),
            (UNNECESSARY_DYNAMIC_DISPATCH, self._check_dynamic_dispatch),
            (SINGLE_IMPLEMENTOR_TRAIT, self._check_single_implementor),
            (EXCESSIVE_TYPE_PARAMETERS, self._check_type_parameter_count),
        )

    def _check_over_constrained(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(OVER_CONSTRAINED_GENERIC):
            return
        min_bounds = ctx.threshold(OVER_CONSTRAINED_GENERIC, "min_bounds")
        for function in ctx.unit.functions():
            if not function.statements:
                continue
            used = _used_bounds(function)
            for generic in function.generics:
                bounds = generic.trait_bounds
                if len(bounds) < min_bounds:
                    continue
                unused = [
                    b for b in bounds if _bound_key(b) not in used and _bound_key(b) not in MARKER_BOUNDS
                ]
                if not unused:
                    continue
                ctx.emit(
                    OVER_CONSTRAINED_GENERIC,
                    function.decl_id,
                    f"'{generic.name}' in '{function.name}' has {len(bounds)} bounds; "
                    f"unused: {', '.join(unused)}",
                    confidence=Confidence.LIKELY,
                    suggestion="Drop bounds the body never relies on",
                )

    def _check_under_constrained(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNDER_CONSTRAINED_GENERIC):
            return
        declarations: List = [*ctx.unit.functions(include_signatures=True), *ctx.unit.structs()]
        declarations.sort(key=lambda d: ctx.unit.order_key(d.decl_id))
        for decl in declarations:
            types = self._signature_types(decl)
            for generic in decl.generics:
                if generic.trait_bounds:
                    continue
                chains = [chain for t in types for chain in _occurrences(t, generic.name)]
                if not chains:
                    continue
                if all(not chain for chain in chains):
                    # fn f<T>(x: T) -> T with no bound can only move the value around
                    if isinstance(decl, StructDecl):
                        continue
                    reason = "only passed through"
                elif all(chain and chain[-1] in PHANTOM_TYPES for chain in chains):
                    reason = "only used as a PhantomData marker"
                else:
                    continue
                ctx.emit(
                    UNDER_CONSTRAINED_GENERIC,
                    decl.decl_id,
                    f"Unbounded '{generic.name}' in '{decl.name}' is {reason}",
                    confidence=Confidence.POSSIBLE,
                    suggestion="Add the bound that states what the type must do, or remove the parameter",
                )

    def _check_dynamic_dispatch(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNNECESSARY_DYNAMIC_DISPATCH):
            return
        for function in ctx.unit.functions():
            if not function.statements or function.statements_of(StatementKind.COLLECT):
                continue
            stored = {s.target for _, s in function.statements_of(StatementKind.MOVE) if s.target}
            for param in function.value_params:
                if not param.type.is_trait_object or param.name in stored:
                    continue
                ctx.emit(
                    UNNECESSARY_DYNAMIC_DISPATCH,
                    function.decl_id,
                    f"'{param.name}: {param.type}' in '{function.name}' uses dynamic dispatch "
                    "but no heterogeneous collection is built",
                    confidence=Confidence.POSSIBLE,
                    suggestion="Take a generic parameter (impl Trait) instead",
                )

    def _check_single_implementor(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(SINGLE_IMPLEMENTOR_TRAIT):
            return
        for trait in ctx.unit.traits():
            if trait.is_public or trait.tags & BOUNDARY_TAGS:
                continue
            implementors = ctx.unit.implementors(trait.name)
            if len(implementors) != 1:
                continue
            ctx.emit(
                SINGLE_IMPLEMENTOR_TRAIT,
                trait.decl_id,
                f"Private trait '{trait.name}' is only implemented by '{implementors[0]}'",
                confidence=Confidence.POSSIBLE,
                suggestion="Call the concrete type directly",
            )

    def _check_type_parameter_count(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(EXCESSIVE_TYPE_PARAMETERS):
            return
        min_params = ctx.threshold(EXCESSIVE_TYPE_PARAMETERS, "min_type_params")
        declarations: List = [
            *ctx.unit.functions(include_signatures=True),
            *ctx.unit.structs(),
            *ctx.unit.traits(),
            *ctx.unit.enums(),
            *ctx.unit.impls(),
        ]
        declarations.sort(key=lambda d: ctx.unit.order_key(d.decl_id))
        for decl in declarations:
            if len(decl.generics) < min_params:
                continue
            names = ", ".join(g.name for g in decl.generics)
            ctx.emit(
                EXCESSIVE_TYPE_PARAMETERS,
                decl.decl_id,
                f"'{decl.name}' is generic over {len(decl.generics)} types ({names})",
                confidence=Confidence.POSSIBLE,
                suggestion="Group related parameters behind a trait with associated types",
            )

    @staticmethod
    def _signature_types(decl) -> List[TypeRef]:
        if isinstance(decl, StructDecl):
            return [f.type for f in decl.fields]
        return decl.signature_types()
