"""
Triage Router.

Decides which domain detectors run on a unit.

Policy:
- Units with at most small_unit_threshold declarations run every enabled detector.
- Larger units skip a detector only when every signal mapped to its domain is zero.
- Critical-trigger mappings, and the trigger signals of every rule whose
  configured severity is Critical, are always part of the activation table,
  so a domain that could report a Critical finding is never skipped.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from crucible.findings.domain.enums import Domain, Severity
from crucible.model.domain.unit import CompilationUnit
from crucible.rules.domain.models import RunConfiguration
from crucible.shared.domain.exceptions import RuleConfigurationError
from crucible.shared.infrastructure.logging import get_logger
from crucible.triage.application.signal_collector import SignalCollector
from crucible.triage.domain.models import DomainActivation, TriageDecision, UnitSignals

logger = get_logger(__name__)

# Signals without which a domain's Critical rules cannot match
CRITICAL_TRIGGERS: Dict[str, Tuple[Domain, ...]] = {
    "struct_count": (Domain.ARCHITECTURE,),
    "shared_mutations": (Domain.CONCURRENCY,),
    "lock_acquisitions": (Domain.CONCURRENCY,),
    "async_functions": (Domain.CONCURRENCY,),
    "reference_fields": (Domain.BORROWING,),
    "reference_returns": (Domain.BORROWING,),
    "error_statements": (Domain.ERROR_HANDLING,),
    "unsafe_operations": (Domain.SYSTEMS,),
    "ffi_calls": (Domain.SYSTEMS,),
}

# Signals a rule cannot match without; merged in for rules configured as critical
RULE_TRIGGERS: Dict[str, Tuple[str, ...]] = {
    # Architecture
    "god-entity": ("struct_count",),
    "over-layering": ("sequential_call_chains",),
    "trait-per-verb": ("single_method_traits",),
    "unnecessary-nesting": ("struct_count",),
    "fat-interface": ("trait_count",),
    "concrete-coupling": ("struct_count",),
    "cyclic-composition": ("struct_count",),
    "single-implementor-trait": ("trait_count",),
    "newtype-without-semantics": ("struct_count",),
    "deep-trait-hierarchy": ("trait_count",),
    # Concurrency
    "shared-state-race": ("shared_mutations",),
    "lock-across-suspend": ("lock_acquisitions",),
    "unbounded-spawn": ("spawns",),
    "blocking-in-async": ("async_functions",),
    "lost-task-failure": ("spawns",),
    "lock-order-deadlock": ("lock_acquisitions",),
    "unbounded-io-wait": ("io_operations",),
    "unbounded-channel": ("channels",),
    "cancellation-unsafe": ("select_branches",),
    "excessive-shared-clone": ("clones",),
    # Borrowing
    "unnecessary-lifetime": ("lifetime_params",),
    "over-parameterized-lifetimes": ("lifetime_params",),
    "self-reference": ("reference_fields",),
    "unsound-lifetime-merge": ("reference_returns",),
    "owned-to-avoid-borrow": ("owned_params",),
    # Error handling
    "error-context-loss": ("error_statements",),
    "generic-error-channel": ("result_returns",),
    "silent-error-discard": ("error_statements",),
    "blind-reraise": ("error_statements",),
    "abort-on-error": ("unwraps",),
    "missing-error-classification": ("error_types",),
    "error-missing-display": ("error_types",),
    "unbounded-retry": ("error_statements",),
    # Systems
    "undocumented-unsafe": ("unsafe_operations",),
    "unvalidated-unsafe": ("unsafe_operations",),
    "use-after-free": ("unsafe_operations",),
    "unguarded-pointer-arithmetic": ("unsafe_operations",),
    "dangling-ffi-capture": ("ffi_calls",),
    "allocation-overflow": ("size_multiplications",),
    "misleading-safety": ("unsafe_operations",),
    "misaligned-cast": ("unsafe_operations",),
    # Type system
    "over-constrained-generic": ("generic_params",),
    "under-constrained-generic": ("generic_params",),
    "unnecessary-dynamic-dispatch": ("trait_object_params",),
    "excessive-type-parameters": ("generic_params",),
}

DEFAULT_ACTIVATION: Dict[str, Tuple[Domain, ...]] = {
    **CRITICAL_TRIGGERS,
    "trait_count": (Domain.ARCHITECTURE, Domain.TYPE_SYSTEM),
    "single_method_traits": (Domain.ARCHITECTURE,),
    "struct_reference_edges": (Domain.ARCHITECTURE,),
    "sequential_call_chains": (Domain.ARCHITECTURE,),
    "lock_suspend_adjacency": (Domain.CONCURRENCY,),
    "io_operations": (Domain.CONCURRENCY,),
    "spawns": (Domain.CONCURRENCY,),
    "channels": (Domain.CONCURRENCY,),
    "select_branches": (Domain.CONCURRENCY,),
    "clones": (Domain.CONCURRENCY,),
    "lifetime_params": (Domain.BORROWING,),
    "owned_params": (Domain.BORROWING,),
    "unwraps": (Domain.ERROR_HANDLING,),
    "error_types": (Domain.ERROR_HANDLING,),
    "result_returns": (Domain.ERROR_HANDLING,),
    "pointer_creations": (Domain.SYSTEMS,),
    "size_multiplications": (Domain.SYSTEMS,),
    "generic_params": (Domain.TYPE_SYSTEM,),
    "max_generic_bounds": (Domain.TYPE_SYSTEM,),
    "trait_object_params": (Domain.TYPE_SYSTEM,),
}


def critical_triggers(config: Optional[RunConfiguration] = None) -> Dict[str, Tuple[Domain, ...]]:
    """
    Signal -> domains that must stay selected when the signal is non-zero.

    CRITICAL_TRIGGERS plus the triggers of every enabled rule whose
    effective severity in the configuration is critical.
    """
    triggers: Dict[str, List[Domain]] = {signal: list(domains) for signal, domains in CRITICAL_TRIGGERS.items()}
    if config is not None:
        for rule in config.rules.values():
            if not rule.enabled or rule.effective_severity != Severity.CRITICAL:
                continue
            for signal in RULE_TRIGGERS.get(rule.rule_id, ()):
                merged = triggers.setdefault(signal, [])
                merged.extend(d for d in rule.domains if d not in merged)
    return {signal: tuple(domains) for signal, domains in triggers.items()}


def build_activation_table(
    custom: Optional[Mapping[str, Iterable[Domain]]] = None,
    config: Optional[RunConfiguration] = None,
) -> Dict[str, Tuple[Domain, ...]]:
    """
    Activation table with critical triggers merged in.

    A custom table replaces the default one; critical triggers (including
    those of rules configured as critical) are added back.

    Raises:
        RuleConfigurationError: If a custom entry names an unknown signal
    """
    if custom:
        known = set(UnitSignals.signal_names())
        unknown = sorted(set(custom) - known)
        if unknown:
            raise RuleConfigurationError(f"Unknown triage signals: {', '.join(unknown)}", {"known": sorted(known)})
        table: Dict[str, Tuple[Domain, ...]] = {signal: tuple(domains) for signal, domains in custom.items()}
    else:
        table = dict(DEFAULT_ACTIVATION)

    for signal, domains in critical_triggers(config).items():
        merged = list(table.get(signal, ()))
        merged.extend(d for d in domains if d not in merged)
        table[signal] = tuple(merged)
    return table


class TriageRouter:
    """Selects domain detectors per unit from cheap structural signals."""

    def __init__(
        self,
        config: RunConfiguration,
        collector: Optional[SignalCollector] = None,
    ) -> None:
        self.config = config
        self.collector = collector or SignalCollector()
        self.activation = build_activation_table(config.activation, config)
        self.small_unit_threshold = config.small_unit_threshold

    @staticmethod
    def critical_trigger_signals(config: Optional[RunConfiguration] = None) -> Dict[Domain, Tuple[str, ...]]:
        """Domain -> signals whose non-zero count keeps the domain selected."""
        result: Dict[Domain, List[str]] = {}
        for signal, domains in critical_triggers(config).items():
            for domain in domains:
                result.setdefault(domain, []).append(signal)
        return {domain: tuple(signals) for domain, signals in result.items()}

    def route(self, unit: CompilationUnit, available: Optional[Iterable[Domain]] = None) -> TriageDecision:
        """
        Decide which domains to analyze.

        Args:
            unit: Unit to route
            available: Domains with a registered detector (default: all)

        Returns:
            TriageDecision with ranked activations and skipped domains
        """
        signals = self.collector.collect(unit)
        domains = list(available) if available is not None else list(Domain)
        small = signals.declaration_count <= self.small_unit_threshold

        activations: List[DomainActivation] = []
        skipped: List[Domain] = []
        for domain in domains:
            if not any(rule.enabled for rule in self.config.rules_for(domain)):
                skipped.append(domain)
                continue

            score, top_signal = self._score(domain, signals)
            if small:
                reason = f"small unit ({signals.declaration_count} <= {self.small_unit_threshold} declarations)"
            elif score > 0:
                reason = f"{top_signal}={signals.value(top_signal)}"
            else:
                skipped.append(domain)
                continue
            activations.append(DomainActivation(domain=domain, score=score, top_signal=top_signal, reason=reason))

        order = {d: i for i, d in enumerate(Domain)}
        activations.sort(key=lambda a: (-a.score, order[a.domain]))

        decision = TriageDecision(
            unit_name=unit.name,
            declaration_count=signals.declaration_count,
            small_unit=small,
            activations=activations,
            skipped=skipped,
            signals=signals,
        )
        logger.debug(
            "unit_triaged",
            unit=unit.name,
            small_unit=small,
            selected=[d.value for d in decision.selected_domains],
            skipped=[d.value for d in skipped],
        )
        return decision

    def _score(self, domain: Domain, signals: UnitSignals) -> Tuple[int, Optional[str]]:
        score = 0
        top_signal: Optional[str] = None
        top_value = 0
        for signal, domains in self.activation.items():
            if domain not in domains:
                continue
            value = signals.value(signal)
            score += value
            if value > top_value:
                top_signal, top_value = signal, value
        return score, top_signal
