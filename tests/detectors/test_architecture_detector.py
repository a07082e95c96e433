"""Tests for ArchitectureDetector."""

import pytest

from crucible.detectors.architecture.detector import ArchitectureDetector
from crucible.findings.domain.enums import Confidence, Domain, Severity


@pytest.fixture
def detector():
    return ArchitectureDetector()


def _findings(result, rule_id):
    return [f for f in result.findings if f.rule_id == rule_id]


class TestGodEntity:

    def test_user_manager_is_a_god_entity(self, detector, god_entity_unit, run_config):
        result = detector.detect(god_entity_unit, run_config)

        findings = _findings(result, "god-entity")
        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity == Severity.CRITICAL
        assert finding.confidence == Confidence.LIKELY
        assert finding.location.declaration_id == "struct:UserManager"
        assert finding.domain == Domain.ARCHITECTURE

    def test_without_method_clusters_confidence_stays_possible(self, detector, detect):
        fields = [
            "db: DatabasePool", "cache: LruCache", "auth_tokens: TokenStore", "email_sender: SmtpMailer",
            "metrics: MetricsRegistry", "http_client: HttpClient", "config: AppConfig", "billing: PaymentGateway",
        ]
        methods = [{"name": f"op_{i}", "params": ["&self"]} for i in range(20)]
        result = detect(
            detector,
            {"kind": "struct", "name": "Hub", "fields": fields},
            {"kind": "impl", "self_type": "Hub", "methods": methods},
        )
        (finding,) = _findings(result, "god-entity")
        assert finding.confidence == Confidence.POSSIBLE

    def test_large_but_cohesive_struct_is_not_flagged(self, detector, detect, ids):
        fields = [f"column_{i}: Column" for i in range(10)]
        methods = [{"name": f"get_column_{i}", "params": ["&self"]} for i in range(40)]
        result = detect(
            detector,
            {"kind": "struct", "name": "Table", "fields": fields},
            {"kind": "impl", "self_type": "Table", "methods": methods},
        )
        assert "god-entity" not in ids(result)

    def test_disabled_rule_is_not_emitted(self, detector, god_entity_unit, config_with):
        config = config_with({"rules": {"god-entity": {"enabled": False}}})
        result = detector.detect(god_entity_unit, config)
        assert _findings(result, "god-entity") == []

    def test_severity_override(self, detector, god_entity_unit, config_with):
        config = config_with({"rules": {"god-entity": {"severity": "warning"}}})
        result = detector.detect(god_entity_unit, config)
        assert _findings(result, "god-entity")[0].severity == Severity.WARNING

    def test_threshold_override(self, detector, god_entity_unit, config_with):
        config = config_with({"rules": {"god-entity": {"thresholds": {"max_fields": 20}}}})
        result = detector.detect(god_entity_unit, config)
        assert _findings(result, "god-entity") == []


class TestLayeringAndTraits:

    CHAIN = [
        {"kind": "call", "target": "validator::check"},
        {"kind": "call", "target": "mapper::map"},
        {"kind": "call", "target": "repo::save"},
        {"kind": "call", "target": "notifier::send"},
        {"kind": "call", "target": "auditor::record"},
    ]

    def test_over_layering(self, detector, detect, ids):
        result = detect(detector, {"kind": "function", "name": "create_user", "statements": self.CHAIN})
        assert ids(result) == ["over-layering"]
        assert result.findings[0].confidence == Confidence.POSSIBLE

    def test_chain_with_branch_is_real_logic(self, detector, detect, ids):
        statements = [{"kind": "branch"}] + self.CHAIN
        result = detect(detector, {"kind": "function", "name": "create_user", "statements": statements})
        assert "over-layering" not in ids(result)

    def test_trait_per_verb(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "UserGetter", "methods": [{"name": "get_user"}]},
            {"kind": "trait", "name": "UserSetter", "methods": [{"name": "set_user"}]},
            {"kind": "trait", "name": "UserValidator", "methods": [{"name": "validate_user"}]},
        )
        findings = _findings(result, "trait-per-verb")
        assert len(findings) == 1
        assert findings[0].location.declaration_id == "trait:UserGetter"

    def test_verb_named_traits_over_one_noun(self, detector, detect):
        result = detect(
            detector,
            {"kind": "trait", "name": "GetData", "methods": [{"name": "get"}]},
            {"kind": "trait", "name": "SetData", "methods": [{"name": "set"}]},
            {"kind": "trait", "name": "ValidateData", "methods": [{"name": "validate"}]},
            {"kind": "trait", "name": "ProcessData", "methods": [{"name": "process"}]},
        )
        findings = _findings(result, "trait-per-verb")
        assert len(findings) == 1
        assert findings[0].location.declaration_id == "trait:GetData"
        assert "4 single-method traits over 'data'" in findings[0].message

    def test_bare_verb_method_needs_matching_trait_name(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "Reader", "methods": [{"name": "get"}]},
            {"kind": "trait", "name": "Writer", "methods": [{"name": "set"}]},
            {"kind": "trait", "name": "Checker", "methods": [{"name": "validate"}]},
        )
        assert "trait-per-verb" not in ids(result)

    def test_two_verb_traits_are_fine(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "UserGetter", "methods": [{"name": "get_user"}]},
            {"kind": "trait", "name": "UserSetter", "methods": [{"name": "set_user"}]},
        )
        assert "trait-per-verb" not in ids(result)

    def test_fat_interface(self, detector, detect, ids):
        names = ["get_a", "set_b", "validate_c", "process_d", "start_e", "send_f", "count_g", "load_h"]
        result = detect(detector, {"kind": "trait", "name": "Everything", "methods": [{"name": n} for n in names]})
        assert ids(result) == ["fat-interface"]

    def test_many_methods_of_one_kind_are_not_fat(self, detector, detect, ids):
        names = [f"get_{c}" for c in "abcdefgh"]
        result = detect(detector, {"kind": "trait", "name": "Reader", "methods": [{"name": n} for n in names]})
        assert "fat-interface" not in ids(result)

    def test_deep_trait_hierarchy_reports_most_derived(self, detector, detect):
        result = detect(
            detector,
            {"kind": "trait", "name": "A", "supertraits": ["B"]},
            {"kind": "trait", "name": "B", "supertraits": ["C"]},
            {"kind": "trait", "name": "C"},
        )
        findings = _findings(result, "deep-trait-hierarchy")
        assert [f.location.declaration_id for f in findings] == ["trait:A"]


class TestComposition:

    def test_unnecessary_nesting(self, detector, detect):
        result = detect(
            detector,
            {"kind": "struct", "name": "Outer", "fields": ["inner: Middle"]},
            {"kind": "struct", "name": "Middle", "fields": ["inner: Inner"]},
            {"kind": "struct", "name": "Inner", "fields": ["value: u64"]},
        )
        findings = _findings(result, "unnecessary-nesting")
        assert [f.location.declaration_id for f in findings] == ["struct:Outer"]
        assert findings[0].severity == Severity.INFO

    def test_nesting_with_invariant_is_fine(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "struct", "name": "Outer", "fields": ["inner: Middle"]},
            {"kind": "struct", "name": "Middle", "fields": ["inner: Inner"], "tags": ["invariant"]},
            {"kind": "struct", "name": "Inner", "fields": ["value: u64"]},
        )
        assert "unnecessary-nesting" not in ids(result)

    def test_concrete_coupling_when_unit_uses_abstractions(self, detector, detect):
        result = detect(
            detector,
            {"kind": "struct", "name": "Orders", "fields": ["repo: Box<dyn Repository>"]},
            {"kind": "struct", "name": "Billing", "fields": ["client: StripeClient", "amount: u64"]},
        )
        findings = _findings(result, "concrete-coupling")
        assert [f.location.declaration_id for f in findings] == ["struct:Billing"]

    def test_concrete_types_without_abstractions_elsewhere(self, detector, detect, ids):
        result = detect(detector, {"kind": "struct", "name": "Billing", "fields": ["client: StripeClient"]})
        assert "concrete-coupling" not in ids(result)

    def test_cyclic_composition_through_rc_is_definite(self, detector, detect):
        result = detect(
            detector,
            {"kind": "struct", "name": "Parent", "fields": ["child: Rc<Child>"]},
            {"kind": "struct", "name": "Child", "fields": ["parent: Rc<Parent>"]},
        )
        findings = _findings(result, "cyclic-composition")
        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].confidence == Confidence.DEFINITE
        assert findings[0].location.declaration_id == "struct:Parent"

    def test_weak_back_reference_breaks_cycle(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "struct", "name": "Parent", "fields": ["child: Rc<Child>"]},
            {"kind": "struct", "name": "Child", "fields": ["parent: Weak<Parent>"]},
        )
        assert "cyclic-composition" not in ids(result)

    def test_boxed_self_recursion_is_fine(self, detector, detect, ids):
        result = detect(detector, {"kind": "struct", "name": "Node", "fields": ["next: Option<Box<Node>>"]})
        assert "cyclic-composition" not in ids(result)

    def test_newtype_over_value_container(self, detector, detect, ids):
        result = detect(detector, {"kind": "struct", "name": "Payload", "tuple": True, "fields": ["Value"]})
        assert ids(result) == ["newtype-without-semantics"]

    def test_primitive_newtype_and_newtype_with_methods(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "struct", "name": "Meters", "tuple": True, "fields": ["f64"]},
            {"kind": "struct", "name": "Tags", "tuple": True, "fields": ["Vec<String>"]},
            {"kind": "impl", "self_type": "Tags", "methods": [{"name": "normalized", "params": ["&self"]}]},
        )
        assert "newtype-without-semantics" not in ids(result)


class TestSingleImplementor:

    def test_single_implementor(self, detector, detect):
        result = detect(
            detector,
            {"kind": "trait", "name": "Store", "methods": [{"name": "get"}]},
            {"kind": "impl", "self_type": "Memory", "trait": "Store"},
        )
        findings = _findings(result, "single-implementor-trait")
        assert len(findings) == 1
        assert findings[0].severity == Severity.INFO

    @pytest.mark.parametrize("tag", ["ffi", "plugin", "boundary"])
    def test_boundary_tags_exempt(self, detector, detect, ids, tag):
        result = detect(
            detector,
            {"kind": "trait", "name": "Store", "tags": [tag]},
            {"kind": "impl", "self_type": "Memory", "trait": "Store"},
        )
        assert "single-implementor-trait" not in ids(result)

    def test_two_implementors(self, detector, detect, ids):
        result = detect(
            detector,
            {"kind": "trait", "name": "Store"},
            {"kind": "impl", "self_type": "Memory", "trait": "Store"},
            {"kind": "impl", "self_type": "Disk", "trait": "Store"},
        )
        assert "single-implementor-trait" not in ids(result)
