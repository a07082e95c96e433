"""
Architecture Detector

Detects composition anti-patterns:
- God entities spanning many unrelated responsibilities
- Over-layered call chains and trait-per-verb explosions
- Nesting, fat interfaces, concrete coupling and cyclic composition
- Single-implementor traits, hollow newtypes and deep trait hierarchies
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set, Tuple

from crucible.detectors.architecture.constants import (
    BOUNDARY_TAGS,
    CONCRETE_COUPLING,
    CYCLIC_COMPOSITION,
    DEEP_TRAIT_HIERARCHY,
    FAT_INTERFACE,
    GOD_ENTITY,
    INVARIANT_TAG,
    NEWTYPE_WITHOUT_SEMANTICS,
    OVER_LAYERING,
    SERVICE_SUFFIXES,
    SINGLE_IMPLEMENTOR_TRAIT,
    TRAIT_PER_VERB,
    TRAIT_VERBS,
    TRANSPARENT_WRAPPERS,
    UNNECESSARY_NESTING,
    VALUE_CONTAINERS,
    VERB_GROUPS,
)
from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.detectors.domain.naming import leading_verb, matching_clusters, split_words
from crucible.findings.domain.enums import Confidence, Domain
from crucible.model.application.graphs import find_cycles
from crucible.model.domain.enums import StatementKind, TypeKind
from crucible.model.domain.models import (
    SHARED_OWNERSHIP_WRAPPERS,
    WEAK_WRAPPERS,
    StructDecl,
    TraitDecl,
    TypeRef,
)
from crucible.model.domain.unit import CompilationUnit


def _peel(type_ref: TypeRef) -> TypeRef:
    """Strip references and transparent wrappers (Arc<Mutex<Db>> -> Db)."""
    current = type_ref
    while True:
        if current.kind in (TypeKind.REFERENCE, TypeKind.POINTER) and current.referent is not None:
            current = current.referent
        elif current.kind == TypeKind.NAMED and current.name in TRANSPARENT_WRAPPERS and current.args:
            current = current.args[0]
        else:
            return current


def _struct_edges(type_ref: TypeRef, shared: bool = False) -> List[Tuple[str, bool]]:
    """(named type, reached through Rc/Arc) pairs, not descending into Weak."""
    if type_ref.kind == TypeKind.NAMED and type_ref.name in WEAK_WRAPPERS:
        return []
    edges: List[Tuple[str, bool]] = []
    if type_ref.kind == TypeKind.NAMED:
        edges.append((type_ref.name, shared))
        shared = shared or type_ref.name in SHARED_OWNERSHIP_WRAPPERS
    for arg in type_ref.args:
        edges.extend(_struct_edges(arg, shared))
    return edges


def _verb_group(method_name: str) -> Optional[str]:
    verb = leading_verb(method_name)
    for group, verbs in VERB_GROUPS.items():
        if verb in verbs:
            return group
    return None


class ArchitectureDetector(BaseDetector):
    """Detector for structural composition anti-patterns."""

    detector_id = "architecture"
    domain = Domain.ARCHITECTURE

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (GOD_ENTITY, self._check_god_entity),
            (OVER_LAYERING, self._check_over_layering),
            (TRAIT_PER_VERB, self._check_trait_per_verb),
            (UNNECESSARY_NESTING, self._check_unnecessary_nesting),
            (FAT_INTERFACE, self._check_fat_interface),
            (CONCRETE_COUPLING, self._check_concrete_coupling),
            (CYCLIC_COMPOSITION, self._check_cyclic_composition),
            (SINGLE_IMPLEMENTOR_TRAIT, self._check_single_implementor),
            (NEWTYPE_WITHOUT_SEMANTICS, self._check_newtype),
            (DEEP_TRAIT_HIERARCHY, self._check_deep_hierarchy),
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_god_entity(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(GOD_ENTITY):
            return
        max_fields = ctx.threshold(GOD_ENTITY, "max_fields")
        max_methods = ctx.threshold(GOD_ENTITY, "max_methods")
        min_field_clusters = ctx.threshold(GOD_ENTITY, "min_field_clusters")
        min_method_clusters = ctx.threshold(GOD_ENTITY, "min_method_clusters")

        for struct in ctx.unit.structs():
            methods = ctx.unit.methods_of(struct.name)
            if struct.field_count <= max_fields or len(methods) <= max_methods:
                continue

            field_names = [f.name for f in struct.fields]
            field_names.extend(name for f in struct.fields for name in f.type.named_types())
            field_clusters = matching_clusters(field_names, ctx.config.clusters)
            if len(field_clusters) < min_field_clusters:
                continue

            method_clusters = matching_clusters((m.name for m in methods), ctx.config.clusters)
            confidence = Confidence.POSSIBLE
            if len(method_clusters) >= min_method_clusters:
                confidence = confidence.upgraded()

            ctx.emit(
                GOD_ENTITY,
                struct.decl_id,
                f"'{struct.name}' has {struct.field_count} fields and {len(methods)} methods "
                f"spanning {len(field_clusters)} concerns ({', '.join(sorted(field_clusters))})",
                confidence=confidence,
                suggestion="Split into focused components, one per concern",
            )

    def _check_over_layering(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(OVER_LAYERING):
            return
        min_chain = ctx.threshold(OVER_LAYERING, "min_chain")

        for function in ctx.unit.functions():
            if function.statements_of(StatementKind.BRANCH, StatementKind.LOOP_START):
                continue
            calls = [stmt for _, stmt in function.statements_of(StatementKind.CALL)]
            if len(calls) < min_chain:
                continue

            components = [str(stmt.attr("component") or self._component_of(stmt.target)) for stmt in calls]
            if len(set(components)) != len(components):
                continue
            if any(not self._is_single_purpose(ctx.unit, c) for c in components):
                continue

            ctx.emit(
                OVER_LAYERING,
                function.decl_id,
                f"'{function.name}' only forwards through {len(components)} single-purpose layers "
                f"({' -> '.join(components)})",
                confidence=Confidence.POSSIBLE,
                suggestion="Collapse pass-through layers that add no behavior",
            )

    def _check_trait_per_verb(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(TRAIT_PER_VERB):
            return
        min_traits = ctx.threshold(TRAIT_PER_VERB, "min_traits")

        by_noun: Dict[str, List[str]] = defaultdict(list)
        for trait in ctx.unit.traits():
            if len(trait.methods) != 1:
                continue
            noun = self._verb_trait_noun(trait)
            if noun:
                by_noun[noun].append(trait.decl_id)

        for noun, trait_ids in by_noun.items():
            if len(trait_ids) < min_traits:
                continue
            names = [ctx.unit.get(tid).name for tid in trait_ids]
            ctx.emit(
                TRAIT_PER_VERB,
                trait_ids[0],
                f"{len(trait_ids)} single-method traits over '{noun}': {', '.join(names)}",
                confidence=Confidence.LIKELY,
                suggestion="Merge into one trait describing the concept",
            )

    def _check_unnecessary_nesting(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNNECESSARY_NESTING):
            return
        min_depth = ctx.threshold(UNNECESSARY_NESTING, "min_depth")

        wrapped = {self._wrapped_struct(ctx.unit, s) for s in ctx.unit.structs()}
        for struct in ctx.unit.structs():
            # Report chain heads only
            if struct.name in wrapped:
                continue
            chain = self._wrapper_chain(ctx.unit, struct)
            if len(chain) < min_depth:
                continue
            if any(self._has_semantics(ctx.unit, link) for link in chain):
                continue
            ctx.emit(
                UNNECESSARY_NESTING,
                struct.decl_id,
                f"'{struct.name}' nests {len(chain)} single-field wrappers "
                f"({' -> '.join(s.name for s in chain)})",
                confidence=Confidence.POSSIBLE,
                suggestion="Flatten wrappers that hold no invariant",
            )

    def _check_fat_interface(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(FAT_INTERFACE):
            return
        min_methods = ctx.threshold(FAT_INTERFACE, "min_methods")
        min_groups = ctx.threshold(FAT_INTERFACE, "min_verb_groups")

        for trait in ctx.unit.traits():
            if len(trait.methods) < min_methods:
                continue
            groups = {g for g in (_verb_group(m.name) for m in trait.methods) if g}
            if len(groups) < min_groups:
                continue
            ctx.emit(
                FAT_INTERFACE,
                trait.decl_id,
                f"Trait '{trait.name}' has {len(trait.methods)} methods across "
                f"{len(groups)} verb groups ({', '.join(sorted(groups))})",
                confidence=Confidence.LIKELY,
                suggestion="Segregate into role-specific traits",
            )

    def _check_concrete_coupling(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(CONCRETE_COUPLING):
            return
        if not self._uses_abstractions(ctx.unit):
            return

        trait_names = {t.name for t in ctx.unit.traits()}
        for struct in ctx.unit.structs():
            generic_names = {g.name for g in struct.generics}
            coupled = []
            for f in struct.fields:
                if f.type.is_trait_object:
                    continue
                core = _peel(f.type)
                if core.kind != TypeKind.NAMED or core.name in generic_names or core.name in trait_names:
                    continue
                if core.name.endswith(SERVICE_SUFFIXES):
                    coupled.append(f"{f.name}: {core.name}")
            if coupled:
                ctx.emit(
                    CONCRETE_COUPLING,
                    struct.decl_id,
                    f"'{struct.name}' depends on concrete services ({', '.join(coupled)}) "
                    "while the unit uses abstractions elsewhere",
                    confidence=Confidence.POSSIBLE,
                    suggestion="Depend on a trait so implementations can be swapped",
                )

    def _check_cyclic_composition(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(CYCLIC_COMPOSITION):
            return

        struct_names = [s.name for s in ctx.unit.structs()]
        known = set(struct_names)
        graph: Dict[str, List[str]] = {name: [] for name in struct_names}
        shared_edges: Set[Tuple[str, str]] = set()
        for struct in ctx.unit.structs():
            for f in struct.fields:
                for target, shared in _struct_edges(f.type):
                    if target not in known:
                        continue
                    if target not in graph[struct.name]:
                        graph[struct.name].append(target)
                    if shared:
                        shared_edges.add((struct.name, target))

        for cycle in find_cycles(graph, include_self_loops=False):
            members = set(cycle)
            via_shared = any(a in members and b in members for a, b in shared_edges)
            head = ctx.unit.struct_named(cycle[0])
            ctx.emit(
                CYCLIC_COMPOSITION,
                head.decl_id,
                f"Structs reference each other in a cycle: {' -> '.join(cycle + [cycle[0]])}",
                confidence=Confidence.DEFINITE if via_shared else Confidence.LIKELY,
                suggestion="Break the cycle with Weak back-references or an id lookup",
            )

    def _check_single_implementor(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(SINGLE_IMPLEMENTOR_TRAIT):
            return
        for trait in ctx.unit.traits():
            if trait.tags & BOUNDARY_TAGS:
                continue
            implementors = ctx.unit.implementors(trait.name)
            if len(implementors) != 1:
                continue
            ctx.emit(
                SINGLE_IMPLEMENTOR_TRAIT,
                trait.decl_id,
                f"Trait '{trait.name}' has a single implementor '{implementors[0]}'",
                confidence=Confidence.POSSIBLE,
                suggestion="Use the concrete type until a second implementation exists",
            )

    def _check_newtype(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(NEWTYPE_WITHOUT_SEMANTICS):
            return
        for struct in ctx.unit.structs():
            if not struct.is_tuple or struct.field_count != 1:
                continue
            inner = struct.fields[0].type
            if inner.kind != TypeKind.NAMED or inner.name not in VALUE_CONTAINERS:
                continue
            if ctx.unit.methods_of(struct.name):
                continue
            ctx.emit(
                NEWTYPE_WITHOUT_SEMANTICS,
                struct.decl_id,
                f"'{struct.name}' wraps {inner} without adding behavior",
                confidence=Confidence.POSSIBLE,
                suggestion="Give the wrapper typed accessors or use the container directly",
            )

    def _check_deep_hierarchy(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(DEEP_TRAIT_HIERARCHY):
            return
        min_depth = ctx.threshold(DEEP_TRAIT_HIERARCHY, "min_depth")

        inherited = {s for t in ctx.unit.traits() for s in t.supertraits}
        for trait in ctx.unit.traits():
            depth = ctx.unit.trait_depth(trait.name)
            # Report the most derived trait of each chain
            if depth < min_depth or trait.name in inherited:
                continue
            ctx.emit(
                DEEP_TRAIT_HIERARCHY,
                trait.decl_id,
                f"Trait '{trait.name}' sits {depth} levels deep "
                f"({' -> '.join([trait.name] + ctx.unit.supertrait_chain(trait.name))})",
                confidence=Confidence.LIKELY,
                suggestion="Prefer composing small traits over stacking supertraits",
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _verb_trait_noun(trait: TraitDecl) -> str:
        """Noun of a single-verb trait: get_user -> user, or GetData::get -> data."""
        words = split_words(trait.methods[0].name)
        if len(words) >= 2 and words[0] in TRAIT_VERBS:
            return " ".join(words[1:])
        if len(words) != 1 or words[0] not in TRAIT_VERBS:
            return ""
        trait_words = split_words(trait.name)
        if len(trait_words) >= 2 and trait_words[0] == words[0]:
            return " ".join(trait_words[1:])
        return ""

    @staticmethod
    def _component_of(target: Optional[str]) -> str:
        if not target:
            return ""
        for separator in ("::", "."):
            if separator in target:
                return target.split(separator)[0]
        return target

    @staticmethod
    def _is_single_purpose(unit: CompilationUnit, component: str) -> bool:
        if not component:
            return False
        key = component.replace("_", "").lower()
        for struct in unit.structs():
            if struct.name.lower() == key:
                return len(unit.methods_of(struct.name, include_trait_impls=False)) <= 1
        return True

    @staticmethod
    def _wrapped_struct(unit: CompilationUnit, struct: StructDecl) -> Optional[str]:
        if struct.field_count != 1:
            return None
        inner = _peel(struct.fields[0].type)
        if inner.kind == TypeKind.NAMED and unit.struct_named(inner.name) is not None:
            return inner.name
        return None

    def _wrapper_chain(self, unit: CompilationUnit, head: StructDecl) -> List[StructDecl]:
        """Consecutive single-field structs each wrapping the next, starting at head."""
        chain: List[StructDecl] = []
        current: Optional[StructDecl] = head
        while current is not None and current not in chain:
            inner = self._wrapped_struct(unit, current)
            if inner is None:
                break
            chain.append(current)
            current = unit.struct_named(inner)
        return chain

    @staticmethod
    def _has_semantics(unit: CompilationUnit, struct: StructDecl) -> bool:
        return struct.has_tag(INVARIANT_TAG) or bool(unit.methods_of(struct.name, include_trait_impls=False))

    @staticmethod
    def _uses_abstractions(unit: CompilationUnit) -> bool:
        for struct in unit.structs():
            if any(g.trait_bounds for g in struct.generics):
                return True
            if any(f.type.is_trait_object for f in struct.fields):
                return True
        return False
