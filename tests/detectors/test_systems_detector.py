"""Tests for SystemsDetector."""

import pytest

from crucible.detectors.systems.detector import SystemsDetector
from crucible.findings.domain.enums import Confidence, Severity


@pytest.fixture
def detector():
    return SystemsDetector()


def _fn(name, *statements, **extra):
    return {"kind": "function", "name": name, "statements": list(statements), **extra}


DEREF = {"kind": "ptr_deref", "target": "p"}
GUARD = {"kind": "guard", "target": "p", "checks": ["null", "len"]}


class TestUnsafePreconditions:

    def test_undocumented_deref_is_critical(self, detector, detect):
        result = detect(detector, _fn("read_header", DEREF))

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.rule_id == "undocumented-unsafe"
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == Confidence.DEFINITE
        assert finding.location.statement_offset == 0

    def test_documented_but_unchecked(self, detector, detect, ids):
        result = detect(detector, _fn("read_header", dict(DEREF, safety="p points to a live header")))
        assert ids(result) == ["unvalidated-unsafe"]
        assert result.findings[0].severity == Severity.CRITICAL

    @pytest.mark.parametrize("statements", [
        [GUARD, dict(DEREF, safety="p is non-null and in bounds")],
        [GUARD, {"kind": "safety_comment"}, DEREF],
        [{"kind": "safety_comment", "target": "p"}, GUARD, DEREF],
    ])
    def test_documented_and_guarded_is_never_flagged(self, detector, detect, ids, statements):
        result = detect(detector, _fn("read_header", *statements))
        assert ids(result) == []

    def test_guard_after_deref_does_not_count(self, detector, detect, ids):
        result = detect(detector, _fn("read_header", dict(DEREF, safety="checked below"), GUARD))
        assert ids(result) == ["unvalidated-unsafe"]

    def test_unsafe_fn_with_safety_doc_is_still_critical_without_a_guard(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "process_pointer",
                {"kind": "ptr_deref", "target": "ptr"},
                unsafe=True,
                params=["ptr: *const u8"],
                doc="# Safety\nptr must be valid",
            ),
        )
        assert ids(result) == ["unvalidated-unsafe"]
        finding = result.findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == Confidence.POSSIBLE

    def test_guarded_unsafe_fn_with_safety_doc_is_not_flagged(self, detector, detect, ids):
        result = detect(detector, _fn("read_raw", GUARD, DEREF, unsafe=True, doc="# Safety\n\n`p` must be valid."))
        assert ids(result) == []

    def test_safety_doc_without_unsafe_fn_still_needs_a_guard(self, detector, detect, ids):
        result = detect(detector, _fn("read_raw", DEREF, doc="# Safety\n\n`p` must be valid."))
        assert ids(result) == ["unvalidated-unsafe"]


class TestPointerLifetime:

    def test_use_after_scope_end(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "peek",
                {"kind": "ptr_create", "target": "p", "source": "buf", "source_scope": 1},
                GUARD,
                {"kind": "scope_end", "scope": 1},
                dict(DEREF, safety="p is valid"),
            ),
        )
        assert ids(result) == ["use-after-free"]
        assert result.findings[0].location.statement_offset == 3
        assert result.findings[0].confidence == Confidence.DEFINITE

    def test_use_while_owner_alive(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "peek",
                {"kind": "ptr_create", "target": "p", "source": "buf", "source_scope": 1},
                GUARD,
                dict(DEREF, safety="p is valid"),
                {"kind": "scope_end", "scope": 1},
            ),
        )
        assert ids(result) == []

    def test_null_pointer_with_safety_claim(self, detector, detect, ids):
        result = detect(
            detector,
            _fn("init", {"kind": "ptr_create", "target": "p", "null": True}, dict(DEREF, safety="p is non-null")),
        )
        assert "misleading-safety" in ids(result)

    def test_null_pointer_checked_before_use(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "init",
                {"kind": "ptr_create", "target": "p", "null": True},
                GUARD,
                dict(DEREF, safety="p is non-null"),
            ),
        )
        assert ids(result) == []


class TestArithmeticAndFfi:

    def test_unguarded_pointer_arithmetic(self, detector, detect, ids):
        result = detect(detector, _fn("advance", {"kind": "ptr_arith", "target": "p", "safety": "within buffer"}))
        assert ids(result) == ["unvalidated-unsafe", "unguarded-pointer-arithmetic"]

    def test_guarded_pointer_arithmetic(self, detector, detect, ids):
        result = detect(detector, _fn("advance", GUARD, {"kind": "ptr_arith", "target": "p", "safety": "within buffer"}))
        assert ids(result) == []

    def test_borrowed_pointer_to_ffi(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "register",
                {"kind": "ffi_call", "target": "lib_register", "borrowed": True},
                {"kind": "ffi_call", "target": "lib_register", "borrowed": True, "lifetime_tied": True},
            ),
        )
        assert ids(result) == ["dangling-ffi-capture"]
        assert result.findings[0].location.statement_offset == 0

    @pytest.mark.parametrize("mul, expected", [
        ({"kind": "arith_mul", "target": "size"}, ["allocation-overflow"]),
        ({"kind": "arith_mul", "target": "size", "checked": True}, []),
        ({"kind": "arith_mul", "target": "other"}, []),
    ])
    def test_allocation_size_overflow(self, detector, detect, ids, mul, expected):
        result = detect(detector, _fn("alloc_table", mul, {"kind": "alloc", "size": "size"}))
        assert ids(result) == expected

    def test_misaligned_cast(self, detector, detect, ids):
        cast = {"kind": "ptr_cast", "target": "p", "from_align": 1, "to_align": 8, "safety": "p is aligned"}
        result = detect(detector, _fn("as_words", GUARD, cast))
        assert ids(result) == ["misaligned-cast"]

    def test_alignment_checked(self, detector, detect, ids):
        cast = {"kind": "ptr_cast", "target": "p", "from_align": 1, "to_align": 8, "safety": "p is aligned"}
        guard = {"kind": "guard", "target": "p", "checks": ["align"]}
        result = detect(detector, _fn("as_words", guard, cast))
        assert ids(result) == []
