"""
Model builder - raw mappings to immutable CompilationUnits.

Raw unit shape (JSON/YAML):

    name: checkout
    declarations:
      - kind: struct
        name: Cart
        fields: ["items: Vec<Item>", {name: owner, type: "Arc<User>"}]
      - kind: function
        name: fetch
        async: true
        params: ["url: &str"]
        returns: "Result<Vec<u8>, FetchError>"
        statements:
          - {kind: lock_acquire, target: cache}
          - {kind: suspend, target: get}

Any statement key other than kind/target/scope/task becomes a read-only
attribute. Every failure is reported as ModelConstructionError so the
orchestrator can skip the unit and keep the batch going.
"""

import re
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from crucible.model.application.graphs import dag_depths
from crucible.model.application.type_parser import (
    TypeParseError,
    parse_bounds,
    parse_type,
    split_param_declaration,
)
from crucible.model.domain.enums import DeclarationKind, StatementKind, TypeKind
from crucible.model.domain.models import (
    Declaration,
    EnumDecl,
    Field,
    FunctionDecl,
    GenericParam,
    ImplBlock,
    LifetimeParam,
    OwnershipTag,
    Param,
    Statement,
    StructDecl,
    TraitDecl,
    TypeRef,
    Variant,
)
from crucible.model.domain.unit import CompilationUnit
from crucible.shared.domain.exceptions import ModelConstructionError
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

_STATEMENT_KEYS = {"kind", "target", "scope", "task", "attrs"}
_NAMED_ITEM_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*:(?!:)\s*(.+)$")
_RECEIVER_RE = re.compile(r"^\s*(&\s*('[A-Za-z_][A-Za-z0-9_]*\s+)?(mut\s+)?)?self\s*$")
_SELF_TYPE = TypeRef(TypeKind.NAMED, name="Self", path="Self")


class ModelBuilder:
    """Builds CompilationUnits from raw mappings."""

    def build(self, raw: Mapping[str, Any]) -> CompilationUnit:
        """
        Build a compilation unit.

        Args:
            raw: Mapping with "name" and "declarations"

        Returns:
            Immutable CompilationUnit

        Raises:
            ModelConstructionError: If the input cannot be reduced to valid declarations
        """
        if not isinstance(raw, Mapping):
            raise ModelConstructionError("Unit must be a mapping", {"type": type(raw).__name__})

        unit_name = str(raw.get("name") or "<unit>")
        raw_decls = raw.get("declarations", [])
        if not isinstance(raw_decls, Sequence) or isinstance(raw_decls, (str, bytes)):
            raise ModelConstructionError("'declarations' must be a list", {"unit": unit_name})

        self._used_ids: Set[str] = set()
        self._type_names: Set[str] = set()
        declarations: List[Declaration] = []

        for position, raw_decl in enumerate(raw_decls):
            try:
                declarations.append(self._build_declaration(raw_decl))
            except (TypeParseError, TypeError, ValueError, AttributeError) as e:
                raise ModelConstructionError(
                    f"Invalid declaration {position}: {e}",
                    {"unit": unit_name, "declaration": position},
                ) from e
            except ModelConstructionError as e:
                e.context.setdefault("unit", unit_name)
                e.context.setdefault("declaration", position)
                raise

        trait_graph = {
            d.name: list(d.supertraits) for d in declarations if isinstance(d, TraitDecl)
        }
        depths = dag_depths(trait_graph)
        if depths is None:
            raise ModelConstructionError("Supertrait hierarchy contains a cycle", {"unit": unit_name})

        unit = CompilationUnit(
            name=unit_name,
            declarations=tuple(declarations),
            trait_depths=MappingProxyType(depths),
        )
        logger.debug("unit_built", unit=unit_name, declarations=len(declarations))
        return unit

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _build_declaration(self, raw: Any) -> Declaration:
        if not isinstance(raw, Mapping):
            raise ModelConstructionError("Declaration must be a mapping")
        kind_value = raw.get("kind")
        try:
            kind = DeclarationKind(str(kind_value).lower())
        except ValueError:
            raise ModelConstructionError(f"Unknown declaration kind: {kind_value!r}") from None

        if kind == DeclarationKind.STRUCT:
            return self._build_struct(raw)
        if kind == DeclarationKind.TRAIT:
            return self._build_trait(raw)
        if kind == DeclarationKind.IMPL:
            return self._build_impl(raw)
        if kind == DeclarationKind.ENUM:
            return self._build_enum(raw)
        return self._build_function(raw, default_id=f"fn:{self._require_name(raw)}")

    def _build_struct(self, raw: Mapping[str, Any]) -> StructDecl:
        name = self._register_type_name(raw)
        is_tuple = bool(raw.get("tuple", False))
        fields = tuple(
            self._build_field(item, position, is_tuple)
            for position, item in enumerate(raw.get("fields", []))
        )
        field_names = {f.name for f in fields}
        if len(field_names) != len(fields):
            raise ModelConstructionError(f"Duplicate field in struct {name}")
        for f in fields:
            if f.borrows_from is not None and f.borrows_from not in field_names:
                raise ModelConstructionError(
                    f"Field {name}.{f.name} borrows from unknown field {f.borrows_from!r}"
                )
        is_pinned = bool(raw.get("pinned", False)) or any(
            f.type.mentions("PhantomPinned") for f in fields
        )
        return StructDecl(
            decl_id=self._claim_id(raw, f"struct:{name}", unique=True),
            name=name,
            fields=fields,
            generics=self._build_generics(raw),
            lifetimes=self._build_lifetimes(raw.get("lifetimes", [])),
            derives=tuple(str(d) for d in raw.get("derives", [])),
            is_tuple=is_tuple,
            is_pinned=is_pinned,
            is_public=self._is_public(raw),
            doc=str(raw.get("doc", "")),
            tags=frozenset(str(t) for t in raw.get("tags", [])),
        )

    def _build_trait(self, raw: Mapping[str, Any]) -> TraitDecl:
        name = self._register_type_name(raw)
        decl_id = self._claim_id(raw, f"trait:{name}", unique=True)
        methods = tuple(
            self._build_function(m, default_id=f"{decl_id}::{self._require_name(m)}", owner=decl_id)
            for m in raw.get("methods", [])
        )
        supertraits: List[str] = []
        for item in raw.get("supertraits", []):
            supertraits.extend(b.split("<")[0] for b in parse_bounds(str(item)) if not b.startswith("'"))
        return TraitDecl(
            decl_id=decl_id,
            name=name,
            methods=methods,
            supertraits=tuple(supertraits),
            generics=self._build_generics(raw),
            is_public=self._is_public(raw),
            doc=str(raw.get("doc", "")),
            tags=frozenset(str(t) for t in raw.get("tags", [])),
        )

    def _build_impl(self, raw: Mapping[str, Any]) -> ImplBlock:
        self_type = raw.get("self_type") or raw.get("for")
        if not self_type:
            raise ModelConstructionError("Impl block requires 'self_type'")
        self_type_ref = parse_type(str(self_type))
        trait_name = raw.get("trait")
        trait_ref = parse_type(str(trait_name)) if trait_name else None
        base_id = (
            f"impl:{trait_ref.name} for {self_type_ref.name}" if trait_ref else f"impl:{self_type_ref.name}"
        )
        decl_id = self._claim_id(raw, base_id, unique=False)
        methods = tuple(
            self._build_function(m, default_id=f"{decl_id}::{self._require_name(m)}", owner=decl_id)
            for m in raw.get("methods", [])
        )
        return ImplBlock(
            decl_id=decl_id,
            self_type=self_type_ref.name,
            trait_name=trait_ref.name if trait_ref else None,
            methods=methods,
            generics=self._build_generics(raw),
            lifetimes=self._build_lifetimes(raw.get("lifetimes", [])),
            is_unsafe=bool(raw.get("unsafe", False)),
        )

    def _build_enum(self, raw: Mapping[str, Any]) -> EnumDecl:
        name = self._register_type_name(raw)
        variants = []
        for item in raw.get("variants", []):
            if isinstance(item, str):
                variants.append(Variant(name=item))
            elif isinstance(item, Mapping):
                variants.append(Variant(
                    name=self._require_name(item),
                    payload=tuple(parse_type(str(t)) for t in item.get("payload", [])),
                    doc=str(item.get("doc", "")),
                ))
            else:
                raise ModelConstructionError(f"Invalid variant in enum {name}")
        return EnumDecl(
            decl_id=self._claim_id(raw, f"enum:{name}", unique=True),
            name=name,
            variants=tuple(variants),
            generics=self._build_generics(raw),
            derives=tuple(str(d) for d in raw.get("derives", [])),
            is_public=self._is_public(raw),
            doc=str(raw.get("doc", "")),
            tags=frozenset(str(t) for t in raw.get("tags", [])),
        )

    def _build_function(
        self,
        raw: Any,
        default_id: str,
        owner: Optional[str] = None,
    ) -> FunctionDecl:
        if not isinstance(raw, Mapping):
            raise ModelConstructionError("Function must be a mapping")
        name = self._require_name(raw)
        returns = raw.get("returns")
        statements = tuple(self._build_statement(s, name) for s in raw.get("statements", []))
        return FunctionDecl(
            decl_id=self._claim_id(raw, default_id, unique=owner is None),
            name=name,
            params=tuple(self._build_param(p) for p in raw.get("params", [])),
            returns=parse_type(str(returns)) if returns not in (None, "") else None,
            is_async=bool(raw.get("async", False)),
            is_unsafe=bool(raw.get("unsafe", False)),
            is_public=self._is_public(raw),
            generics=self._build_generics(raw),
            lifetimes=self._build_lifetimes(raw.get("lifetimes", [])),
            statements=statements,
            doc=str(raw.get("doc", "")),
            tags=frozenset(str(t) for t in raw.get("tags", [])),
            owner=owner,
            ownership=self._ownership_tags(statements),
        )

    # ------------------------------------------------------------------
    # Parts
    # ------------------------------------------------------------------

    def _build_param(self, raw: Any) -> Param:
        if isinstance(raw, str):
            receiver = _RECEIVER_RE.match(raw)
            if receiver:
                return Param(name="self", type=self._receiver_type(raw), is_receiver=True)
            match = _NAMED_ITEM_RE.match(raw)
            if not match:
                raise ModelConstructionError(f"Invalid parameter {raw!r}")
            return Param(name=match.group(1), type=parse_type(match.group(2)))
        if isinstance(raw, Mapping):
            name = self._require_name(raw)
            if name == "self":
                return Param(name="self", type=self._receiver_type(str(raw.get("type", "self"))), is_receiver=True)
            if "type" not in raw:
                raise ModelConstructionError(f"Parameter {name!r} has no type")
            return Param(name=name, type=parse_type(str(raw["type"])))
        raise ModelConstructionError(f"Invalid parameter {raw!r}")

    def _receiver_type(self, text: str) -> TypeRef:
        text = text.strip()
        if not text.startswith("&"):
            return _SELF_TYPE
        lifetime_match = re.search(r"'[A-Za-z_][A-Za-z0-9_]*", text)
        return TypeRef(
            TypeKind.REFERENCE,
            name="Self",
            args=(_SELF_TYPE,),
            lifetime=lifetime_match.group(0) if lifetime_match else None,
            mutable="mut" in text.split(),
        )

    def _build_field(self, raw: Any, position: int, is_tuple: bool) -> Field:
        borrows_from = None
        if isinstance(raw, str):
            match = None if is_tuple else _NAMED_ITEM_RE.match(raw)
            if match:
                name, type_ref = match.group(1), parse_type(match.group(2))
            elif is_tuple:
                name, type_ref = str(position), parse_type(raw)
            else:
                raise ModelConstructionError(f"Invalid field {raw!r}")
        elif isinstance(raw, Mapping):
            name = str(raw.get("name", position if is_tuple else ""))
            if not name:
                raise ModelConstructionError("Field without a name")
            if "type" not in raw:
                raise ModelConstructionError(f"Field {name!r} has no type")
            type_ref = parse_type(str(raw["type"]))
            borrows_from = raw.get("borrows_from")
        else:
            raise ModelConstructionError(f"Invalid field {raw!r}")

        boxed_or_shared = any(
            node.is_shared_ownership or node.is_boxed_trait_object for node in type_ref.walk()
        )
        return Field(name=name, type=type_ref, is_boxed_or_shared=boxed_or_shared, borrows_from=borrows_from)

    def _build_generics(self, raw: Mapping[str, Any]) -> Tuple[GenericParam, ...]:
        bounds_by_name: Dict[str, List[str]] = {}
        for item in raw.get("generics", []):
            if isinstance(item, str):
                name, bounds_text = split_param_declaration(item)
                bounds = list(parse_bounds(bounds_text))
            elif isinstance(item, Mapping):
                name = self._require_name(item)
                bounds = [str(b) for b in item.get("bounds", [])]
            else:
                raise ModelConstructionError(f"Invalid generic parameter {item!r}")
            if name.startswith("'"):
                raise ModelConstructionError(f"Lifetime {name} listed under generics")
            if name in bounds_by_name:
                raise ModelConstructionError(f"Duplicate generic parameter {name}")
            bounds_by_name[name] = bounds

        for name, bounds_text in (raw.get("where") or {}).items():
            if name not in bounds_by_name:
                raise ModelConstructionError(f"Where clause names undeclared parameter {name}")
            for bound in parse_bounds(str(bounds_text)):
                if bound not in bounds_by_name[name]:
                    bounds_by_name[name].append(bound)

        return tuple(GenericParam(name=n, bounds=tuple(b)) for n, b in bounds_by_name.items())

    def _build_lifetimes(self, items: Sequence[Any]) -> Tuple[LifetimeParam, ...]:
        lifetimes: List[LifetimeParam] = []
        for item in items:
            if isinstance(item, str):
                name, bounds_text = split_param_declaration(item)
                outlives = parse_bounds(bounds_text)
            elif isinstance(item, Mapping):
                name = self._require_name(item)
                outlives = tuple(str(o) for o in item.get("outlives", []))
            else:
                raise ModelConstructionError(f"Invalid lifetime parameter {item!r}")
            if not name.startswith("'") or any(not o.startswith("'") for o in outlives):
                raise ModelConstructionError(f"Invalid lifetime parameter {item!r}")
            lifetimes.append(LifetimeParam(name=name, outlives=tuple(outlives)))
        if len({lt.name for lt in lifetimes}) != len(lifetimes):
            raise ModelConstructionError("Duplicate lifetime parameter")
        return tuple(lifetimes)

    def _build_statement(self, raw: Any, function_name: str) -> Statement:
        if isinstance(raw, str):
            raw = {"kind": raw}
        if not isinstance(raw, Mapping):
            raise ModelConstructionError(f"Invalid statement in {function_name}: {raw!r}")
        try:
            kind = StatementKind(str(raw.get("kind")).lower())
        except ValueError:
            raise ModelConstructionError(
                f"Unknown statement kind {raw.get('kind')!r} in {function_name}"
            ) from None

        attrs: Dict[str, Any] = dict(raw.get("attrs") or {})
        attrs.update({k: v for k, v in raw.items() if k not in _STATEMENT_KEYS})
        scope = raw.get("scope", 0)
        if not isinstance(scope, int):
            raise ModelConstructionError(f"Statement scope must be an integer in {function_name}")
        target = raw.get("target")
        task = raw.get("task")
        return Statement(
            kind=kind,
            target=str(target) if target is not None else None,
            scope=scope,
            task=str(task) if task is not None else None,
            attrs=MappingProxyType(attrs),
        )

    def _ownership_tags(self, statements: Sequence[Statement]) -> Tuple[OwnershipTag, ...]:
        """Attach owner/scope-end metadata to every raw pointer created in the body."""
        tags: List[OwnershipTag] = []
        for offset, stmt in enumerate(statements):
            if stmt.kind == StatementKind.PTR_CREATE and stmt.target:
                tags.append(OwnershipTag(
                    pointer=stmt.target,
                    owner=stmt.attr("source"),
                    created_at=offset,
                    owner_scope=int(stmt.attr("source_scope", stmt.scope)),
                    from_null=stmt.flag("null") or stmt.flag("zeroed"),
                ))
            elif stmt.kind == StatementKind.SCOPE_END:
                tags = [
                    replace(t, released_at=offset)
                    if t.released_at is None and t.owner is not None and t.owner_scope == stmt.scope
                    else t
                    for t in tags
                ]
            elif stmt.kind == StatementKind.DROP and stmt.target:
                tags = [
                    replace(t, released_at=offset)
                    if t.released_at is None and t.owner == stmt.target
                    else t
                    for t in tags
                ]
        return tuple(tags)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_name(raw: Any) -> str:
        if not isinstance(raw, Mapping):
            raise ModelConstructionError(f"Expected a mapping but found {raw!r}")
        name = raw.get("name")
        if not name or not isinstance(name, str):
            raise ModelConstructionError("Declaration without a name")
        return name

    @staticmethod
    def _is_public(raw: Mapping[str, Any]) -> bool:
        return bool(raw.get("public", raw.get("pub", False)))

    def _register_type_name(self, raw: Mapping[str, Any]) -> str:
        name = self._require_name(raw)
        if name in self._type_names:
            raise ModelConstructionError(f"Duplicate type name {name!r}")
        self._type_names.add(name)
        return name

    def _claim_id(self, raw: Mapping[str, Any], default: str, unique: bool) -> str:
        explicit = raw.get("id")
        if explicit:
            if explicit in self._used_ids:
                raise ModelConstructionError(f"Duplicate declaration id {explicit!r}")
            self._used_ids.add(explicit)
            return str(explicit)
        if default in self._used_ids:
            if unique:
                raise ModelConstructionError(f"Duplicate declaration id {default!r}")
            suffix = 2
            while f"{default}#{suffix}" in self._used_ids:
                suffix += 1
            default = f"{default}#{suffix}"
        self._used_ids.add(default)
        return default


def build_unit(raw: Mapping[str, Any]) -> CompilationUnit:
    """Convenience wrapper around ModelBuilder().build."""
    return ModelBuilder().build(raw)
