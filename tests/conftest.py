"""Shared test fixtures for the Crucible test suite."""

from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from crucible.detectors.domain.detector import BaseDetector, DetectionResult
from crucible.model.application.builder import build_unit
from crucible.model.domain.unit import CompilationUnit
from crucible.rules.application.config_loader import RuleConfigLoader, default_run_configuration
from crucible.rules.domain.models import RunConfiguration


@pytest.fixture
def run_config() -> RunConfiguration:
    """Catalog defaults, no overrides."""
    return default_run_configuration()


@pytest.fixture
def config_with():
    """Build a RunConfiguration from an override mapping."""

    def _config(data: Dict[str, Any]) -> RunConfiguration:
        return RuleConfigLoader().from_mapping(data)

    return _config


@pytest.fixture
def make_unit():
    """Build a CompilationUnit from raw declaration mappings."""

    def _make(*declarations: Dict[str, Any], name: str = "unit") -> CompilationUnit:
        return build_unit({"name": name, "declarations": list(declarations)})

    return _make


@pytest.fixture
def detect(make_unit, run_config):
    """Run one detector over raw declarations."""

    def _detect(
        detector: BaseDetector,
        *declarations: Dict[str, Any],
        config: Optional[RunConfiguration] = None,
    ) -> DetectionResult:
        unit = make_unit(*declarations)
        return detector.detect(unit, config or run_config)

    return _detect


def rule_ids(result: DetectionResult) -> List[str]:
    return [f.rule_id for f in result.findings]


@pytest.fixture
def ids():
    """Rule ids of a detection result, in emission order."""
    return rule_ids


@pytest.fixture
def runner():
    return CliRunner()


# ---------------------------------------------------------------------------
# Scenario units
# ---------------------------------------------------------------------------

GOD_FIELDS = [
    "db: DatabasePool",
    "cache: LruCache",
    "auth_tokens: HashMap<String, Token>",
    "email_sender: SmtpMailer",
    "metrics: MetricsRegistry",
    "http_client: HttpClient",
    "config: AppConfig",
    "billing_gateway: PaymentGateway",
    "search_index: SearchIndex",
    "scheduler: JobScheduler",
]

GOD_METHOD_PREFIXES = ["db", "cache", "auth", "email", "metrics", "http", "config", "payment"]


def god_entity_declarations() -> List[Dict[str, Any]]:
    """UserManager: 10 fields across many concerns and 40 methods."""
    methods = [
        {"name": f"{GOD_METHOD_PREFIXES[i % len(GOD_METHOD_PREFIXES)]}_op_{i}", "params": ["&self"]}
        for i in range(40)
    ]
    return [
        {"kind": "struct", "name": "UserManager", "fields": GOD_FIELDS},
        {"kind": "impl", "self_type": "UserManager", "methods": methods},
    ]


@pytest.fixture
def god_entity_unit(make_unit):
    return make_unit(*god_entity_declarations(), name="user_manager")


@pytest.fixture
def mixed_raw_unit() -> Dict[str, Any]:
    """A unit with findings in several domains."""
    return {
        "name": "service",
        "declarations": [
            {"kind": "trait", "name": "Store", "methods": [{"name": "get", "params": ["&self"]}]},
            {"kind": "struct", "name": "Memory", "fields": ["items: Vec<u8>"]},
            {"kind": "impl", "self_type": "Memory", "trait": "Store", "methods": [{"name": "get", "params": ["&self"]}]},
            {
                "kind": "function",
                "name": "refresh",
                "async": True,
                "statements": [
                    {"kind": "lock_acquire", "target": "cache"},
                    {"kind": "suspend", "target": "fetch"},
                    {"kind": "lock_release", "target": "cache"},
                ],
            },
            {
                "kind": "function",
                "name": "handle_request",
                "statements": [{"kind": "unwrap", "target": "body"}],
            },
        ],
    }
