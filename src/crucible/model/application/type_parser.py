"""
Type descriptor shorthand parser.

Turns Rust-like type text into TypeRef trees so raw units can write
"Arc<Mutex<Db>>" instead of nested mappings. This only decodes type
descriptors; it is not a source parser.

Supported forms:
    u32, str, Database, serde_json::Value, Vec<T>, HashMap<K, V>
    &T, &'a T, &mut T, &'a mut T, *const T, *mut T
    dyn Trait + Send + 'a, impl Iterator<Item = T>
    (A, B), (), [T], [u8; 16]
    Fn(String) -> Result<Out, E>
"""

import re
from typing import List, Optional, Tuple

from crucible.model.domain.enums import TypeKind
from crucible.model.domain.models import TypeRef

PRIMITIVE_TYPES = frozenset({
    "i8", "i16", "i32", "i64", "i128", "isize",
    "u8", "u16", "u32", "u64", "u128", "usize",
    "f32", "f64", "bool", "char", "str",
})

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<lifetime>'[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<arrow>->)"
    r"|(?P<path_sep>::)"
    r"|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<number>[0-9]+)"
    r"|(?P<symbol>[&*<>,()\[\];+=!?])"
    r")"
)


class TypeParseError(ValueError):
    """Raised when a type descriptor cannot be decoded."""


def _tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match or match.end() == position:
            raise TypeParseError(f"Unexpected character {text[position]!r} in type {text!r}")
        tokens.append(match.group(match.lastgroup))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self, offset: int = 0) -> Optional[str]:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def take(self, expected: Optional[str] = None) -> str:
        token = self.peek()
        if token is None:
            raise TypeParseError(f"Unexpected end of type {self.text!r}")
        if expected is not None and token != expected:
            raise TypeParseError(f"Expected {expected!r} but found {token!r} in type {self.text!r}")
        self.pos += 1
        return token

    def done(self) -> bool:
        return self.pos >= len(self.tokens)

    # ------------------------------------------------------------------

    def parse_type(self) -> TypeRef:
        token = self.peek()
        if token is None:
            raise TypeParseError(f"Empty type in {self.text!r}")

        if token == "&":
            self.take()
            lifetime = self.take() if (self.peek() or "").startswith("'") else None
            mutable = False
            if self.peek() == "mut":
                self.take()
                mutable = True
            inner = self.parse_type()
            return TypeRef(TypeKind.REFERENCE, name=inner.name, args=(inner,), lifetime=lifetime, mutable=mutable)

        if token == "*":
            self.take()
            qualifier = self.take()
            if qualifier not in ("const", "mut"):
                raise TypeParseError(f"Raw pointer needs const or mut in {self.text!r}")
            inner = self.parse_type()
            return TypeRef(TypeKind.POINTER, name=inner.name, args=(inner,), mutable=qualifier == "mut")

        if token in ("dyn", "impl"):
            self.take()
            bounds = self.parse_bounds()
            kind = TypeKind.TRAIT_OBJECT if token == "dyn" else TypeKind.IMPL_TRAIT
            primary = next((b for b in bounds if not b.startswith("'")), "")
            return TypeRef(kind, name=primary.split("<")[0].split("(")[0], bounds=tuple(bounds))

        if token == "(":
            members = self._parse_list("(", ")")
            return TypeRef(TypeKind.TUPLE, name="()" if not members else "", args=tuple(members))

        if token == "[":
            self.take()
            inner = self.parse_type()
            if self.peek() == ";":
                self.take()
                while self.peek() not in ("]", None):
                    self.take()
            self.take("]")
            return TypeRef(TypeKind.SLICE, name=inner.name, args=(inner,))

        if token.startswith("'"):
            self.take()
            return TypeRef(TypeKind.LIFETIME, name=token)

        if token == "!":
            self.take()
            return TypeRef(TypeKind.PRIMITIVE, name="!", path="!")

        return self._parse_path()

    def _parse_path(self) -> TypeRef:
        segments = [self._take_ident()]
        while self.peek() == "::":
            self.take()
            segments.append(self._take_ident())
        path = "::".join(segments)
        name = segments[-1]

        args: List[TypeRef] = []
        if self.peek() == "<":
            args = self._parse_generic_args()
        elif self.peek() == "(" and name in ("Fn", "FnMut", "FnOnce"):
            args = self._parse_list("(", ")")
            if self.peek() == "->":
                self.take()
                args.append(self.parse_type())

        if name in PRIMITIVE_TYPES and not args and len(segments) == 1:
            return TypeRef(TypeKind.PRIMITIVE, name=name, path=path)
        return TypeRef(TypeKind.NAMED, name=name, path=path, args=tuple(args))

    def _parse_generic_args(self) -> List[TypeRef]:
        self.take("<")
        args: List[TypeRef] = []
        while self.peek() != ">":
            # Associated type binding: Item = T
            if self.peek(1) == "=" and self.peek() not in ("<", "&", "*", "("):
                self.take()
                self.take("=")
            args.append(self.parse_type())
            if self.peek() == ",":
                self.take()
            elif self.peek() != ">":
                raise TypeParseError(f"Expected ',' or '>' in type {self.text!r}")
        self.take(">")
        return args

    def _parse_list(self, opener: str, closer: str) -> List[TypeRef]:
        self.take(opener)
        members: List[TypeRef] = []
        while self.peek() != closer:
            members.append(self.parse_type())
            if self.peek() == ",":
                self.take()
            elif self.peek() != closer:
                raise TypeParseError(f"Expected ',' or {closer!r} in type {self.text!r}")
        self.take(closer)
        return members

    def parse_bounds(self) -> List[str]:
        bounds = [self._parse_bound()]
        while self.peek() == "+":
            self.take()
            bounds.append(self._parse_bound())
        return bounds

    def _parse_bound(self) -> str:
        token = self.peek()
        if token is not None and token.startswith("'"):
            return self.take()
        if token == "?":
            self.take()
            return "?" + self._parse_path().render()
        return self._parse_path().render()

    def _take_ident(self) -> str:
        token = self.take()
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", token):
            raise TypeParseError(f"Expected identifier but found {token!r} in type {self.text!r}")
        return token


def parse_type(text: str) -> TypeRef:
    """
    Parse a type descriptor.

    Raises:
        TypeParseError: If the text is not a well-formed type
    """
    parser = _Parser(text)
    result = parser.parse_type()
    if not parser.done():
        raise TypeParseError(f"Trailing tokens in type {text!r}")
    return result


def parse_bounds(text: str) -> Tuple[str, ...]:
    """Parse "Clone + Debug + 'a" into ("Clone", "Debug", "'a")."""
    if not text.strip():
        return ()
    parser = _Parser(text)
    bounds = parser.parse_bounds()
    if not parser.done():
        raise TypeParseError(f"Trailing tokens in bounds {text!r}")
    return tuple(bounds)


def split_param_declaration(text: str) -> Tuple[str, str]:
    """Split "T: Clone + Debug" / "'a: 'b" into name and bounds text."""
    name, _, bounds = text.partition(":")
    name = name.strip()
    if not name:
        raise TypeParseError(f"Missing parameter name in {text!r}")
    return name, bounds.strip()
