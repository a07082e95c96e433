"""
Structural model - immutable declarations of one compilation unit.

All models are frozen dataclasses holding tuples and read-only mappings.
They are created by ModelBuilder once per run and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from crucible.model.domain.enums import DeclarationKind, StatementKind, TypeKind

# Wrappers that place the wrapped value behind an owned indirection
INDIRECTION_WRAPPERS: FrozenSet[str] = frozenset({"Box", "Pin", "Rc", "Arc"})

# Shared-ownership handles
SHARED_OWNERSHIP_WRAPPERS: FrozenSet[str] = frozenset({"Rc", "Arc"})

# Non-owning handles that never keep their target alive
WEAK_WRAPPERS: FrozenSet[str] = frozenset({"Weak"})


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class TypeRef:
    """
    Type descriptor.

    Attributes:
        kind: Shape of the type
        name: Last path segment ("Value" for serde_json::Value), lifetime name for LIFETIME
        path: Full path as written
        args: Generic arguments, referent (REFERENCE/POINTER/SLICE) or tuple members
        lifetime: Lifetime of a reference, if written
        mutable: &mut / *mut
        bounds: Trait bounds of dyn/impl types
    """

    kind: TypeKind
    name: str = ""
    path: str = ""
    args: Tuple["TypeRef", ...] = ()
    lifetime: Optional[str] = None
    mutable: bool = False
    bounds: Tuple[str, ...] = ()

    def walk(self) -> Iterator["TypeRef"]:
        """Yield this descriptor and every nested one, depth first."""
        yield self
        for arg in self.args:
            yield from arg.walk()

    def lifetimes(self) -> List[str]:
        """All lifetime occurrences in written order (duplicates kept)."""
        found: List[str] = []
        for node in self.walk():
            if node.kind == TypeKind.REFERENCE and node.lifetime:
                found.append(node.lifetime)
            elif node.kind == TypeKind.LIFETIME:
                found.append(node.name)
            elif node.kind in (TypeKind.TRAIT_OBJECT, TypeKind.IMPL_TRAIT):
                found.extend(b for b in node.bounds if b.startswith("'"))
        return found

    def named_types(self) -> List[str]:
        """Names of every named type mentioned, outermost first."""
        return [node.name for node in self.walk() if node.kind == TypeKind.NAMED]

    def mentions(self, name: str) -> bool:
        return any(
            node.name == name
            for node in self.walk()
            if node.kind in (TypeKind.NAMED, TypeKind.PRIMITIVE)
        )

    @property
    def referent(self) -> Optional["TypeRef"]:
        """Pointee of a reference or pointer."""
        if self.kind in (TypeKind.REFERENCE, TypeKind.POINTER) and self.args:
            return self.args[0]
        return None

    @property
    def is_shared_ownership(self) -> bool:
        return self.kind == TypeKind.NAMED and self.name in SHARED_OWNERSHIP_WRAPPERS

    @property
    def is_boxed_trait_object(self) -> bool:
        """Box<dyn T>, Arc<dyn T>, Rc<dyn T>."""
        return (
            self.kind == TypeKind.NAMED
            and self.name in INDIRECTION_WRAPPERS
            and any(arg.kind == TypeKind.TRAIT_OBJECT for arg in self.args)
        )

    @property
    def is_trait_object(self) -> bool:
        """dyn T behind any pointer-like wrapper, or a bare dyn T."""
        if self.kind == TypeKind.TRAIT_OBJECT:
            return True
        if self.kind in (TypeKind.REFERENCE, TypeKind.POINTER) and self.referent is not None:
            return self.referent.kind == TypeKind.TRAIT_OBJECT
        return self.is_boxed_trait_object

    def render(self) -> str:
        """Render back to Rust-like shorthand."""
        if self.kind == TypeKind.REFERENCE:
            lifetime = f"{self.lifetime} " if self.lifetime else ""
            mut = "mut " if self.mutable else ""
            return f"&{lifetime}{mut}{self.args[0].render()}"
        if self.kind == TypeKind.POINTER:
            qualifier = "mut" if self.mutable else "const"
            return f"*{qualifier} {self.args[0].render()}"
        if self.kind == TypeKind.TRAIT_OBJECT:
            return "dyn " + " + ".join(self.bounds)
        if self.kind == TypeKind.IMPL_TRAIT:
            return "impl " + " + ".join(self.bounds)
        if self.kind == TypeKind.TUPLE:
            return "(" + ", ".join(arg.render() for arg in self.args) + ")"
        if self.kind == TypeKind.SLICE:
            return f"[{self.args[0].render()}]"
        if self.kind == TypeKind.LIFETIME:
            return self.name
        base = self.path or self.name
        if self.args:
            return f"{base}<{', '.join(arg.render() for arg in self.args)}>"
        return base

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class Param:
    """Function parameter. Receivers (self, &self, &mut self) have is_receiver=True."""

    name: str
    type: TypeRef
    is_receiver: bool = False


@dataclass(frozen=True)
class GenericParam:
    """Type parameter with its trait bounds (inline and where-clause merged)."""

    name: str
    bounds: Tuple[str, ...] = ()

    @property
    def trait_bounds(self) -> Tuple[str, ...]:
        return tuple(b for b in self.bounds if not b.startswith("'"))


@dataclass(frozen=True)
class LifetimeParam:
    """Lifetime parameter; outlives holds 'b for a declaration 'a: 'b."""

    name: str
    outlives: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Statement:
    """
    One coarse statement.

    Attributes:
        kind: Statement kind
        target: Subject of the statement (lock, pointer, task handle, callee, variable)
        scope: Lexical block id; a SCOPE_END with the same scope closes it
        task: Label of the spawned task this statement runs in (None = enclosing function)
        attrs: Read-only kind-specific attributes (bounded, blocking, safety, ...)
    """

    kind: StatementKind
    target: Optional[str] = None
    scope: int = 0
    task: Optional[str] = None
    attrs: Mapping[str, Any] = field(default_factory=_empty_mapping)

    def attr(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def flag(self, key: str) -> bool:
        return bool(self.attrs.get(key, False))


@dataclass(frozen=True)
class OwnershipTag:
    """
    Ownership/lifetime tag for a raw pointer.

    released_at is the offset of the statement that ended the owner's scope
    (scope_end of the owner's block, or drop of the owner), None while live.
    """

    pointer: str
    owner: Optional[str]
    created_at: int
    owner_scope: int = 0
    released_at: Optional[int] = None
    from_null: bool = False

    def is_stale_at(self, offset: int) -> bool:
        return self.released_at is not None and self.released_at < offset


@dataclass(frozen=True)
class FunctionDecl:
    """Free function, inherent/trait method or trait method signature."""

    decl_id: str
    name: str
    params: Tuple[Param, ...] = ()
    returns: Optional[TypeRef] = None
    is_async: bool = False
    is_unsafe: bool = False
    is_public: bool = False
    generics: Tuple[GenericParam, ...] = ()
    lifetimes: Tuple[LifetimeParam, ...] = ()
    statements: Tuple[Statement, ...] = ()
    doc: str = ""
    tags: FrozenSet[str] = frozenset()
    owner: Optional[str] = None
    ownership: Tuple[OwnershipTag, ...] = ()

    kind = DeclarationKind.FUNCTION

    @property
    def value_params(self) -> Tuple[Param, ...]:
        return tuple(p for p in self.params if not p.is_receiver)

    @property
    def receiver(self) -> Optional[Param]:
        for param in self.params:
            if param.is_receiver:
                return param
        return None

    def signature_types(self) -> List[TypeRef]:
        types = [p.type for p in self.params]
        if self.returns is not None:
            types.append(self.returns)
        return types

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def statements_of(self, *kinds: StatementKind) -> List[Tuple[int, Statement]]:
        """(offset, statement) pairs of the given kinds, in order."""
        wanted = set(kinds)
        return [(i, s) for i, s in enumerate(self.statements) if s.kind in wanted]

    def ownership_of(self, pointer: str, offset: int) -> Optional[OwnershipTag]:
        """Most recent ownership tag for a pointer created before offset."""
        latest = None
        for tag in self.ownership:
            if tag.pointer == pointer and tag.created_at < offset:
                latest = tag
        return latest

    @property
    def has_safety_doc(self) -> bool:
        return "# safety" in self.doc.lower()


@dataclass(frozen=True)
class Field:
    """Struct field. Tuple-struct fields are named "0", "1", ..."""

    name: str
    type: TypeRef
    is_boxed_or_shared: bool = False
    borrows_from: Optional[str] = None


@dataclass(frozen=True)
class StructDecl:
    decl_id: str
    name: str
    fields: Tuple[Field, ...] = ()
    generics: Tuple[GenericParam, ...] = ()
    lifetimes: Tuple[LifetimeParam, ...] = ()
    derives: Tuple[str, ...] = ()
    is_tuple: bool = False
    is_pinned: bool = False
    is_public: bool = False
    doc: str = ""
    tags: FrozenSet[str] = frozenset()

    kind = DeclarationKind.STRUCT

    @property
    def field_count(self) -> int:
        return len(self.fields)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class TraitDecl:
    decl_id: str
    name: str
    methods: Tuple[FunctionDecl, ...] = ()
    supertraits: Tuple[str, ...] = ()
    generics: Tuple[GenericParam, ...] = ()
    is_public: bool = False
    doc: str = ""
    tags: FrozenSet[str] = frozenset()

    kind = DeclarationKind.TRAIT

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class ImplBlock:
    decl_id: str
    self_type: str
    trait_name: Optional[str] = None
    methods: Tuple[FunctionDecl, ...] = ()
    generics: Tuple[GenericParam, ...] = ()
    lifetimes: Tuple[LifetimeParam, ...] = ()
    is_unsafe: bool = False

    kind = DeclarationKind.IMPL

    @property
    def name(self) -> str:
        if self.trait_name:
            return f"{self.trait_name} for {self.self_type}"
        return self.self_type


@dataclass(frozen=True)
class Variant:
    name: str
    payload: Tuple[TypeRef, ...] = ()
    doc: str = ""


@dataclass(frozen=True)
class EnumDecl:
    decl_id: str
    name: str
    variants: Tuple[Variant, ...] = ()
    generics: Tuple[GenericParam, ...] = ()
    derives: Tuple[str, ...] = ()
    is_public: bool = False
    doc: str = ""
    tags: FrozenSet[str] = frozenset()

    kind = DeclarationKind.ENUM

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


Declaration = Union[StructDecl, TraitDecl, ImplBlock, FunctionDecl, EnumDecl]
