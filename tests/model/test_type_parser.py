"""Tests for the type descriptor shorthand parser."""

import pytest

from crucible.model.application.type_parser import (
    TypeParseError,
    parse_bounds,
    parse_type,
    split_param_declaration,
)
from crucible.model.domain.enums import TypeKind


def test_reference_with_lifetime_and_mut():
    ref = parse_type("&'a mut Vec<T>")

    assert ref.kind == TypeKind.REFERENCE
    assert ref.lifetime == "'a"
    assert ref.mutable is True
    assert ref.referent.name == "Vec"
    assert ref.referent.args[0].name == "T"
    assert ref.lifetimes() == ["'a"]


def test_nested_wrappers_keep_order():
    ref = parse_type("Arc<Mutex<Db>>")

    assert ref.kind == TypeKind.NAMED
    assert ref.named_types() == ["Arc", "Mutex", "Db"]
    assert ref.is_shared_ownership


def test_raw_pointer():
    ref = parse_type("*const u8")

    assert ref.kind == TypeKind.POINTER
    assert ref.mutable is False
    assert ref.referent.kind == TypeKind.PRIMITIVE


def test_boxed_trait_object():
    ref = parse_type("Box<dyn Handler + Send>")

    assert ref.is_boxed_trait_object
    assert ref.is_trait_object
    assert ref.args[0].bounds == ("Handler", "Send")


def test_path_keeps_last_segment_as_name():
    ref = parse_type("serde_json::Value")

    assert ref.name == "Value"
    assert ref.path == "serde_json::Value"


def test_unit_tuple_and_array():
    assert parse_type("()").kind == TypeKind.TUPLE
    assert parse_type("()").args == ()
    array = parse_type("[u8; 16]")
    assert array.kind == TypeKind.SLICE
    assert array.args[0].name == "u8"


def test_associated_type_binding():
    ref = parse_type("impl Iterator<Item = &'a str>")

    assert ref.kind == TypeKind.IMPL_TRAIT
    assert ref.name == "Iterator"


def test_render_round_trips_shorthand():
    assert parse_type("&'a mut Vec<T>").render() == "&'a mut Vec<T>"
    assert str(parse_type("Result<Vec<u8>, String>")) == "Result<Vec<u8>, String>"


@pytest.mark.parametrize("text", ["Vec<", "&", "*u8", "Vec<T>>", "Foo-Bar"])
def test_malformed_types_raise(text):
    with pytest.raises(TypeParseError):
        parse_type(text)


def test_parse_bounds():
    assert parse_bounds("Clone + Send + 'a") == ("Clone", "Send", "'a")
    assert parse_bounds("?Sized + Clone") == ("?Sized", "Clone")
    assert parse_bounds("") == ()


def test_split_param_declaration():
    assert split_param_declaration("T: Clone + Debug") == ("T", "Clone + Debug")
    assert split_param_declaration("'a: 'b") == ("'a", "'b")
    with pytest.raises(TypeParseError):
        split_param_declaration(": Clone")
