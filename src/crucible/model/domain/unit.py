"""
CompilationUnit - read-only view over one unit's declarations.

Declarations keep source order. Methods nested in impl blocks and trait
method signatures are indexed by their own ids so findings can point at
them, and they sort directly after their owner.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Type, TypeVar

from crucible.model.domain.models import (
    Declaration,
    EnumDecl,
    FunctionDecl,
    ImplBlock,
    StructDecl,
    TraitDecl,
    TypeRef,
)

D = TypeVar("D")


@dataclass(frozen=True)
class CompilationUnit:
    """
    One compilation unit.

    Attributes:
        name: Unit name (file or module path)
        declarations: Top-level declarations in source order
        trait_depths: Supertrait depth per trait declared in this unit
            (1 = no in-unit supertrait), computed over the supertrait DAG
    """

    name: str
    declarations: Tuple[Declaration, ...]
    trait_depths: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    _index: Mapping[str, Declaration] = field(default=None, repr=False, compare=False)
    _order: Mapping[str, Tuple[int, int]] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, Declaration] = {}
        order: Dict[str, Tuple[int, int]] = {}
        for position, decl in enumerate(self.declarations):
            index[decl.decl_id] = decl
            order[decl.decl_id] = (position, 0)
            for method_position, method in enumerate(getattr(decl, "methods", ()), start=1):
                index[method.decl_id] = method
                order[method.decl_id] = (position, method_position)
        object.__setattr__(self, "_index", MappingProxyType(index))
        object.__setattr__(self, "_order", MappingProxyType(order))

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[Declaration]:
        return iter(self.declarations)

    def __len__(self) -> int:
        return len(self.declarations)

    def __contains__(self, decl_id: object) -> bool:
        return decl_id in self._index

    def get(self, decl_id: str) -> Optional[Declaration]:
        """Fetch a declaration (including nested methods) by id."""
        return self._index.get(decl_id)

    def order_key(self, decl_id: str) -> Tuple[int, int]:
        """Source-order key: (top-level position, method position or 0)."""
        return self._order[decl_id]

    def _of_type(self, cls: Type[D]) -> List[D]:
        return [d for d in self.declarations if isinstance(d, cls)]

    def structs(self) -> List[StructDecl]:
        return self._of_type(StructDecl)

    def traits(self) -> List[TraitDecl]:
        return self._of_type(TraitDecl)

    def impls(self) -> List[ImplBlock]:
        return self._of_type(ImplBlock)

    def enums(self) -> List[EnumDecl]:
        return self._of_type(EnumDecl)

    def functions(self, include_methods: bool = True, include_signatures: bool = False) -> List[FunctionDecl]:
        """
        Functions with bodies in source order.

        Args:
            include_methods: Include methods of impl blocks
            include_signatures: Include bodiless trait method signatures
        """
        result: List[FunctionDecl] = []
        for decl in self.declarations:
            if isinstance(decl, FunctionDecl):
                result.append(decl)
            elif isinstance(decl, ImplBlock) and include_methods:
                result.extend(decl.methods)
            elif isinstance(decl, TraitDecl) and include_signatures:
                result.extend(decl.methods)
        return result

    # ------------------------------------------------------------------
    # Lookups by name
    # ------------------------------------------------------------------

    def struct_named(self, name: str) -> Optional[StructDecl]:
        for decl in self.declarations:
            if isinstance(decl, StructDecl) and decl.name == name:
                return decl
        return None

    def trait_named(self, name: str) -> Optional[TraitDecl]:
        for decl in self.declarations:
            if isinstance(decl, TraitDecl) and decl.name == name:
                return decl
        return None

    def impls_for(self, type_name: str) -> List[ImplBlock]:
        return [i for i in self.impls() if i.self_type == type_name]

    def implementors(self, trait_name: str) -> List[str]:
        """Distinct self types implementing a trait, in source order."""
        seen: List[str] = []
        for impl in self.impls():
            if impl.trait_name == trait_name and impl.self_type not in seen:
                seen.append(impl.self_type)
        return seen

    def methods_of(self, type_name: str, include_trait_impls: bool = True) -> List[FunctionDecl]:
        methods: List[FunctionDecl] = []
        for impl in self.impls_for(type_name):
            if impl.trait_name and not include_trait_impls:
                continue
            methods.extend(impl.methods)
        return methods

    def field_types(self, struct_name: str) -> List[TypeRef]:
        """Resolve a struct's field types (empty when the struct is not in this unit)."""
        struct = self.struct_named(struct_name)
        if struct is None:
            return []
        return [f.type for f in struct.fields]

    # ------------------------------------------------------------------
    # Trait hierarchy
    # ------------------------------------------------------------------

    def supertrait_chain(self, trait_name: str) -> List[str]:
        """
        Transitive supertraits of a trait, breadth first, without duplicates.

        Supertraits not declared in this unit are included but not expanded.
        """
        chain: List[str] = []
        trait = self.trait_named(trait_name)
        frontier = list(trait.supertraits) if trait else []
        while frontier:
            current = frontier.pop(0)
            if current in chain:
                continue
            chain.append(current)
            parent = self.trait_named(current)
            if parent is not None:
                frontier.extend(parent.supertraits)
        return chain

    def trait_depth(self, trait_name: str) -> int:
        return self.trait_depths.get(trait_name, 0)
