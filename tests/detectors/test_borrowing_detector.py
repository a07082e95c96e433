"""Tests for BorrowingDetector."""

import pytest

from crucible.detectors.borrowing.detector import BorrowingDetector
from crucible.findings.domain.enums import Confidence, Severity


@pytest.fixture
def detector():
    return BorrowingDetector()


def _only(result, rule_id):
    return [f for f in result.findings if f.rule_id == rule_id]


class TestLifetimes:

    def test_lifetime_used_once(self, detector, detect):
        result = detect(
            detector,
            {"kind": "function", "name": "count", "lifetimes": ["'a"], "params": ["text: &'a str"], "returns": "usize"},
        )
        findings = _only(result, "unnecessary-lifetime")
        assert len(findings) == 1
        assert findings[0].confidence == Confidence.LIKELY
        assert findings[0].severity == Severity.INFO
        assert findings[0].location.declaration_id == "fn:count"

    def test_lifetime_tying_input_to_output(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "function", "name": "trim", "lifetimes": ["'a"], "params": ["text: &'a str"], "returns": "&'a str"},
        )
        assert ids(result) == []

    def test_related_lifetimes_are_never_flagged(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "join",
                "lifetimes": ["'a: 'b", "'b"],
                "params": ["x: &'a str", "y: &'b str"],
            },
        )
        assert "unnecessary-lifetime" not in ids(result)

    def test_trait_signatures_are_checked(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "trait",
                "name": "Parser",
                "methods": [{"name": "parse", "lifetimes": ["'a"], "params": ["&self", "input: &'a [u8]"]}],
            },
        )
        assert ids(result) == ["unnecessary-lifetime"]

    def test_over_parameterized_lifetimes(self, detector, detect):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "merge",
                "lifetimes": ["'a", "'b", "'c"],
                "params": ["x: &'a str", "y: &'b str", "z: &'c str"],
                "returns": "String",
            },
        )
        findings = _only(result, "over-parameterized-lifetimes")
        assert len(findings) == 1
        assert "'a, 'b, 'c" in findings[0].message

    def test_over_parameterized_struct(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "struct",
                "name": "View",
                "lifetimes": ["'a", "'b", "'c"],
                "fields": ["a: &'a str", "b: &'b str", "c: &'c str"],
            },
        )
        assert ids(result) == ["over-parameterized-lifetimes"]


class TestSelfReference:

    def test_field_borrowing_sibling(self, detector, detect):
        result = detect(
            detector,
            {
                "kind": "struct",
                "name": "Tokenizer",
                "fields": ["source: String", {"name": "cursor", "type": "&str", "borrows_from": "source"}],
            },
        )
        findings = _only(result, "self-reference")
        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].confidence == Confidence.DEFINITE
        assert "cursor" in findings[0].message

    def test_boxed_sibling_is_stable(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "struct",
                "name": "Tokenizer",
                "fields": ["source: Box<str>", {"name": "cursor", "type": "&str", "borrows_from": "source"}],
            },
        )
        assert ids(result) == []

    def test_pointer_to_own_type(self, detector, detect, ids):
        result = detect(detector, {"kind": "struct", "name": "Node", "fields": ["me: *const Node", "value: u32"]})
        assert ids(result) == ["self-reference"]

    def test_pinned_struct(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "struct",
                "name": "Tokenizer",
                "pinned": True,
                "fields": ["source: String", {"name": "cursor", "type": "&str", "borrows_from": "source"}],
            },
        )
        assert ids(result) == []


class TestLifetimeMerge:

    @staticmethod
    def _longest(lifetimes):
        return {
            "kind": "function",
            "name": "longest",
            "lifetimes": lifetimes,
            "params": ["x: &'a str", "y: &'b str"],
            "returns": "&'a str",
            "statements": [{"kind": "return", "borrows": ["x", "y"]}],
        }

    def test_unrelated_inputs_merged(self, detector, detect):
        result = detect(detector, self._longest(["'a", "'b"]))
        findings = _only(result, "unsound-lifetime-merge")
        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].location.statement_offset == 0

    def test_outlives_relation_makes_it_sound(self, detector, detect, ids):
        result = detect(detector, self._longest(["'a", "'b: 'a"]))
        assert "unsound-lifetime-merge" not in ids(result)

    def test_single_source(self, detector, detect, ids):
        function = self._longest(["'a", "'b"])
        function["statements"] = [{"kind": "return", "borrows": ["x"]}]
        result = detect(detector, function)
        assert "unsound-lifetime-merge" not in ids(result)


class TestOwnedParams:

    def test_string_only_read(self, detector, detect):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "greet",
                "params": ["name: String"],
                "statements": [{"kind": "read", "target": "name"}, {"kind": "log", "target": "name"}],
            },
        )
        assert [f.rule_id for f in result.findings] == ["owned-to-avoid-borrow"]

    def test_consumed_parameter(self, detector, detect, ids):
        result = detect(
            detector,
            {
                "kind": "function",
                "name": "store",
                "params": ["name: String"],
                "statements": [{"kind": "move", "target": "name"}],
            },
        )
        assert ids(result) == []

    def test_trait_impl_signature_is_fixed(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "Greeter", "methods": [{"name": "greet", "params": ["&self", "name: String"]}]},
            {
                "kind": "impl",
                "self_type": "Console",
                "trait": "Greeter",
                "methods": [
                    {
                        "name": "greet",
                        "params": ["&self", "name: String"],
                        "statements": [{"kind": "read", "target": "name"}],
                    }
                ],
            },
        )
        assert "owned-to-avoid-borrow" not in ids(result)
