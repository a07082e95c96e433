"""Tests for TypeSystemDetector."""

import pytest

from crucible.detectors.type_system.detector import TypeSystemDetector
from crucible.findings.domain.enums import Domain, Severity


@pytest.fixture
def detector():
    return TypeSystemDetector()


class TestGenericBounds:

    def test_unused_bounds(self, detector, detect):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "save",
                "generics": ["T: Serialize + Clone + Debug + Send"],
                "params": ["item: T"],
                "statements": [{"kind": "call", "target": "serde_json::to_vec", "bound": "Serialize"}],
            },
        )
        assert [f.rule_id for f in result.findings] == ["over-constrained-generic"]
        assert "Clone, Debug" in result.findings[0].message
        assert "Send" not in result.findings[0].message.split("unused:")[1]

    def test_marker_bounds_never_count_as_unused(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "save",
                "generics": ["T: Serialize + Clone + Send + Sync"],
                "params": ["item: T"],
                "statements": [{"kind": "call", "target": "store", "bound": ["serde::Serialize", "Clone"]}],
            },
        )
        assert ids(result) == []

    def test_relaxed_sized_bound_is_a_marker(self, detector, detect):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "show",
                "generics": ["T: ?Sized + Display + Debug + Clone"],
                "params": ["item: &T"],
                "statements": [{"kind": "call", "target": "write", "bound": "Display"}],
            },
        )
        assert [f.rule_id for f in result.findings] == ["over-constrained-generic"]
        assert result.findings[0].message.split("unused: ")[1] == "Debug, Clone"

    def test_bounds_from_where_clause(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "save",
                "generics": ["T: Serialize"],
                "where": {"T": "Clone + Debug + Hash"},
                "params": ["item: T"],
                "statements": [{"kind": "call", "target": "store", "bound": "Serialize"}],
            },
        )
        assert ids(result) == ["over-constrained-generic"]

    def test_pass_through_parameter(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "function", "name": "identity", "generics": ["T"], "params": ["x: T"], "returns": "T"},
        )
        assert ids(result) == ["under-constrained-generic"]

    def test_parameter_inside_container_is_fine(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "function", "name": "first", "generics": ["T"], "params": ["items: Vec<T>"], "returns": "Option<T>"},
        )
        assert ids(result) == []

    def test_phantom_marker(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "struct", "name": "Id", "generics": ["T"], "fields": ["raw: u64", "_marker: PhantomData<T>"]},
        )
        assert ids(result) == ["under-constrained-generic"]

    def test_excessive_type_parameters(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "struct",
                "name": "Pipeline",
                "generics": ["A: Source", "B: Decode", "C: Transform", "D: Sink"],
                "fields": ["a: A", "b: B", "c: C", "d: D"],
            },
        )
        assert ids(result) == ["excessive-type-parameters"]
        assert result.findings[0].severity == Severity.INFO


class TestDispatch:

    def test_trait_object_without_heterogeneous_collection(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "render",
                "params": ["out: &mut dyn Write"],
                "statements": [{"kind": "call", "target": "out.write_all"}],
            },
        )
        assert ids(result) == ["unnecessary-dynamic-dispatch"]

    @pytest.mark.parametrize("statement", [
        {"kind": "collect", "target": "handlers"},
        {"kind": "move", "target": "handler"},
    ])
    def test_stored_trait_objects_are_fine(self, detector, detect, ids, statement):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "register",
                "params": ["handler: Box<dyn Handler>"],
                "statements": [statement],
            },
        )
        assert ids(result) == []


class TestSingleImplementor:

    def test_private_trait(self, detector, detect):
        result = detect(
            detector,
            {"kind": "trait", "name": "Clock"},
            {"kind": "impl", "self_type": "SystemClock", "trait": "Clock"},
        )
        assert [f.rule_id for f in result.findings] == ["single-implementor-trait"]
        assert result.findings[0].domain == Domain.TYPE_SYSTEM

    def test_public_trait_is_left_to_architecture(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "Clock", "public": True},
            {"kind": "impl", "self_type": "SystemClock", "trait": "Clock"},
        )
        assert ids(result) == []
