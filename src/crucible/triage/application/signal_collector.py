"""
Signal collector.

Counts the structural features each detector keys on, in a single pass
over the unit. Counts are deliberately coarse: the router only needs to
know whether a domain has anything to look at.
"""

from typing import Dict, Set

from crucible.detectors.borrowing.constants import OWNED_BORROWABLE
from crucible.detectors.error_handling.detector import is_error_type
from crucible.model.domain.enums import (
    ERROR_STATEMENT_KINDS,
    UNSAFE_STATEMENT_KINDS,
    StatementKind,
    TypeKind,
)
from crucible.model.domain.models import FunctionDecl, TypeRef
from crucible.model.domain.unit import CompilationUnit
from crucible.triage.domain.models import UnitSignals


def _has_reference(type_ref: TypeRef) -> bool:
    return any(node.kind in (TypeKind.REFERENCE, TypeKind.POINTER) for node in type_ref.walk())


class SignalCollector:
    """Computes UnitSignals for a compilation unit."""

    def collect(self, unit: CompilationUnit) -> UnitSignals:
        counts: Dict[str, int] = {name: 0 for name in UnitSignals.signal_names()}
        struct_names = {s.name for s in unit.structs()}

        for struct in unit.structs():
            counts["struct_count"] += 1
            counts["max_field_count"] = max(counts["max_field_count"], struct.field_count)
            counts["max_method_count"] = max(counts["max_method_count"], len(unit.methods_of(struct.name)))
            counts["lifetime_params"] += len(struct.lifetimes)
            counts["generic_params"] += len(struct.generics)
            for f in struct.fields:
                if _has_reference(f.type):
                    counts["reference_fields"] += 1
                counts["struct_reference_edges"] += sum(
                    1 for name in f.type.named_types() if name in struct_names and name != struct.name
                )
            if is_error_type(struct):
                counts["error_types"] += 1

        for trait in unit.traits():
            counts["trait_count"] += 1
            counts["generic_params"] += len(trait.generics)
            if len(trait.methods) == 1:
                counts["single_method_traits"] += 1

        for enum in unit.enums():
            counts["generic_params"] += len(enum.generics)
            if is_error_type(enum):
                counts["error_types"] += 1

        for impl in unit.impls():
            counts["generic_params"] += len(impl.generics)

        for function in unit.functions(include_signatures=True):
            self._collect_function(function, counts)

        return UnitSignals(declaration_count=len(unit), **counts)

    def _collect_function(self, function: FunctionDecl, counts: Dict[str, int]) -> None:
        counts["lifetime_params"] += len(function.lifetimes)
        counts["generic_params"] += len(function.generics)
        if function.is_async:
            counts["async_functions"] += 1
        for generic in function.generics:
            counts["max_generic_bounds"] = max(counts["max_generic_bounds"], len(generic.trait_bounds))

        returns = function.returns
        if returns is not None:
            if _has_reference(returns):
                counts["reference_returns"] += 1
            if returns.kind == TypeKind.NAMED and returns.name == "Result":
                counts["result_returns"] += 1

        for param in function.value_params:
            if param.type.is_trait_object:
                counts["trait_object_params"] += 1
            if param.type.kind == TypeKind.NAMED and param.type.name in OWNED_BORROWABLE:
                counts["owned_params"] += 1

        kinds = [s.kind for s in function.statements]
        if StatementKind.CALL in kinds and StatementKind.BRANCH not in kinds and StatementKind.LOOP_START not in kinds:
            counts["sequential_call_chains"] += 1

        held: Set[str] = set()
        for stmt in function.statements:
            kind = stmt.kind
            if kind in UNSAFE_STATEMENT_KINDS:
                counts["unsafe_operations"] += 1
            if kind in ERROR_STATEMENT_KINDS:
                counts["error_statements"] += 1

            if kind == StatementKind.LOCK_ACQUIRE:
                counts["lock_acquisitions"] += 1
                held.add(stmt.target or "")
            elif kind in (StatementKind.LOCK_RELEASE, StatementKind.DROP):
                held.discard(stmt.target or "")
            elif kind == StatementKind.SUSPEND and held:
                counts["lock_suspend_adjacency"] += 1
            elif kind == StatementKind.SHARED_MUTATE:
                counts["shared_mutations"] += 1
            elif kind == StatementKind.IO:
                counts["io_operations"] += 1
            elif kind == StatementKind.SPAWN:
                counts["spawns"] += 1
            elif kind == StatementKind.CHANNEL_CREATE:
                counts["channels"] += 1
            elif kind == StatementKind.SELECT_BRANCH:
                counts["select_branches"] += 1
            elif kind == StatementKind.CLONE:
                counts["clones"] += 1
            elif kind == StatementKind.UNWRAP:
                counts["unwraps"] += 1
            elif kind == StatementKind.FFI_CALL:
                counts["ffi_calls"] += 1
            elif kind == StatementKind.PTR_CREATE:
                counts["pointer_creations"] += 1
            elif kind == StatementKind.ARITH_MUL:
                counts["size_multiplications"] += 1
