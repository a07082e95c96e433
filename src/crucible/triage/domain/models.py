"""
Domain models for the triage router.
Defines per-unit signals, domain activations and routing decisions with strict validation.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crucible.findings.domain.enums import Domain


class UnitSignals(BaseModel):
    """Cheap structural counts gathered in one pass over a unit."""

    model_config = ConfigDict(frozen=True)

    declaration_count: int = Field(0, ge=0)

    # Architecture
    struct_count: int = Field(0, ge=0)
    trait_count: int = Field(0, ge=0)
    max_field_count: int = Field(0, ge=0)
    max_method_count: int = Field(0, ge=0)
    single_method_traits: int = Field(0, ge=0)
    struct_reference_edges: int = Field(0, ge=0)
    sequential_call_chains: int = Field(0, ge=0)

    # Concurrency
    async_functions: int = Field(0, ge=0)
    lock_acquisitions: int = Field(0, ge=0)
    lock_suspend_adjacency: int = Field(0, ge=0)
    shared_mutations: int = Field(0, ge=0)
    io_operations: int = Field(0, ge=0)
    spawns: int = Field(0, ge=0)
    channels: int = Field(0, ge=0)
    select_branches: int = Field(0, ge=0)
    clones: int = Field(0, ge=0)

    # Borrowing
    lifetime_params: int = Field(0, ge=0)
    reference_fields: int = Field(0, ge=0)
    reference_returns: int = Field(0, ge=0)
    owned_params: int = Field(0, ge=0)

    # Error handling
    error_statements: int = Field(0, ge=0)
    unwraps: int = Field(0, ge=0)
    error_types: int = Field(0, ge=0)
    result_returns: int = Field(0, ge=0)

    # Systems
    unsafe_operations: int = Field(0, ge=0)
    ffi_calls: int = Field(0, ge=0)
    pointer_creations: int = Field(0, ge=0)
    size_multiplications: int = Field(0, ge=0)

    # Type system
    generic_params: int = Field(0, ge=0)
    max_generic_bounds: int = Field(0, ge=0)
    trait_object_params: int = Field(0, ge=0)

    @classmethod
    def signal_names(cls) -> List[str]:
        """Names usable as keys of an activation table."""
        return [name for name in cls.model_fields if name != "declaration_count"]

    def value(self, signal: str) -> int:
        return int(getattr(self, signal))

    def as_dict(self) -> Dict[str, int]:
        return {name: self.value(name) for name in self.signal_names()}


class DomainActivation(BaseModel):
    """A selected domain with the evidence that selected it."""

    domain: Domain
    score: int = Field(..., ge=0, description="Sum of the domain's triggering signal counts")
    top_signal: Optional[str] = Field(None, description="Strongest triggering signal")
    reason: str


class TriageDecision(BaseModel):
    """Routing decision for one unit."""

    unit_name: str
    declaration_count: int = Field(..., ge=0)
    small_unit: bool
    activations: List[DomainActivation] = Field(default_factory=list)
    skipped: List[Domain] = Field(default_factory=list)
    signals: Optional[UnitSignals] = None

    @property
    def selected_domains(self) -> List[Domain]:
        """Selected domains, ranked by score."""
        return [a.domain for a in self.activations]

    def is_selected(self, domain: Domain) -> bool:
        return any(a.domain == domain for a in self.activations)
