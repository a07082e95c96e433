"""
Error Handling Detector

Detects error-handling anti-patterns, scaled by where the code runs:
- Context loss, opaque error channels, silent discards, blind re-raises
- Aborts in runtime paths (info in startup code, skipped in tests)
- Error taxonomies without classification or Display
- Retries without bound or backoff
"""

from typing import Optional, Sequence, Tuple, Union

from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.detectors.domain.naming import split_words
from crucible.detectors.error_handling.constants import (
    ABORT_ON_ERROR,
    BLIND_RERAISE,
    CLASSIFIER_METHODS,
    DISPLAY_TRAITS,
    ERROR_CONTEXT_LOSS,
    ERROR_DERIVES,
    ERROR_MISSING_DISPLAY,
    ERROR_TYPE_TAG,
    GENERIC_ERROR_CHANNEL,
    MISSING_ERROR_CLASSIFICATION,
    REQUEST_PATH_TAG,
    REQUEST_WORDS,
    RETRY_BOUND_ATTRS,
    SILENT_ERROR_DISCARD,
    STARTUP_NAMES,
    STARTUP_TAG,
    TEST_TAG,
    TEXT_ERROR_TYPES,
    UNBOUNDED_RETRY,
)
from crucible.findings.domain.enums import Confidence, Domain, Severity
from crucible.model.domain.enums import StatementKind, TypeKind
from crucible.model.domain.models import EnumDecl, FunctionDecl, StructDecl, TypeRef
from crucible.model.domain.unit import CompilationUnit


def is_error_type(decl: Union[StructDecl, EnumDecl]) -> bool:
    """Error types by name, derive or tag."""
    return (
        decl.name.endswith("Error")
        or decl.has_tag(ERROR_TYPE_TAG)
        or any(d in ERROR_DERIVES for d in decl.derives if d != "Display")
    )


def is_test_code(function: FunctionDecl) -> bool:
    return function.has_tag(TEST_TAG) or function.name.startswith("test_")


def is_startup_code(function: FunctionDecl) -> bool:
    if function.has_tag(STARTUP_TAG) or function.name in STARTUP_NAMES:
        return True
    return function.name.startswith(("init_", "setup_", "load_config", "bootstrap"))


def is_request_path(function: FunctionDecl) -> bool:
    return function.has_tag(REQUEST_PATH_TAG) or bool(REQUEST_WORDS.intersection(split_words(function.name)))


def _opaque_error(type_ref: TypeRef) -> Optional[str]:
    """Describe an error payload that erases the failure type, else None."""
    if type_ref.kind == TypeKind.TUPLE and not type_ref.args:
        return "()"
    if type_ref.kind in (TypeKind.NAMED, TypeKind.PRIMITIVE) and type_ref.name in TEXT_ERROR_TYPES:
        return type_ref.render()
    if type_ref.kind == TypeKind.REFERENCE and type_ref.referent is not None and type_ref.referent.name == "str":
        return type_ref.render()
    if type_ref.is_boxed_trait_object:
        trait_object = next(a for a in type_ref.args if a.kind == TypeKind.TRAIT_OBJECT)
        if any(b.split("::")[-1] == "Error" for b in trait_object.bounds):
            return type_ref.render()
    return None


class ErrorHandlingDetector(BaseDetector):
    """Detector for error-handling quality."""

    detector_id = "error_handling"
    domain = Domain.ERROR_HANDLING

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (ERROR_CONTEXT_LOSS, self._check_context_loss),
            (GENERIC_ERROR_CHANNEL, self._check_generic_channel),
            (SILENT_ERROR_DISCARD, self._check_silent_discard),
            (BLIND_RERAISE, self._check_blind_reraise),
            (ABORT_ON_ERROR, self._check_abort),
            (MISSING_ERROR_CLASSIFICATION, self._check_classification),
            (ERROR_MISSING_DISPLAY, self._check_display),
            (UNBOUNDED_RETRY, self._check_retry),
        )

    def _check_context_loss(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(ERROR_CONTEXT_LOSS):
            return
        for function in ctx.unit.functions():
            if is_test_code(function):
                continue
            for offset, stmt in function.statements_of(StatementKind.ERROR_CONVERT):
                if stmt.flag("keeps_source"):
                    continue
                to_text = str(stmt.attr("to", "")).lstrip("&") in TEXT_ERROR_TYPES
                replaced = stmt.attr("keeps_source") is False or stmt.flag("replaced")
                if not (to_text or replaced):
                    continue
                detail = "flattened to text" if to_text else "replaced without its source"
                ctx.emit(
                    ERROR_CONTEXT_LOSS,
                    function.decl_id,
                    f"Error from '{stmt.target or 'call'}' is {detail}",
                    confidence=Confidence.LIKELY if to_text else Confidence.POSSIBLE,
                    offset=offset,
                    suggestion="Wrap the error in a typed variant that keeps the source",
                )

    def _check_generic_channel(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(GENERIC_ERROR_CHANNEL):
            return
        for function in ctx.unit.functions(include_signatures=True):
            returns = function.returns
            if not function.is_public or is_test_code(function) or returns is None:
                continue
            if returns.kind != TypeKind.NAMED or returns.name != "Result" or len(returns.args) < 2:
                continue
            opaque = _opaque_error(returns.args[1])
            if opaque is None:
                continue
            ctx.emit(
                GENERIC_ERROR_CHANNEL,
                function.decl_id,
                f"Public '{function.name}' reports failures as {opaque}",
                confidence=Confidence.LIKELY,
                suggestion="Return a dedicated error enum so callers can match on failures",
            )

    def _check_silent_discard(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(SILENT_ERROR_DISCARD):
            return
        for function in ctx.unit.functions():
            if is_test_code(function):
                continue
            request_path = is_request_path(function)
            for offset, stmt in function.statements_of(StatementKind.ERROR_DISCARD):
                if stmt.flag("logged") or stmt.flag("intentional") or self._logged_after(function, offset, stmt.target):
                    continue
                ctx.emit(
                    SILENT_ERROR_DISCARD,
                    function.decl_id,
                    f"Error from '{stmt.target or 'call'}' is discarded silently"
                    + (" on a request path" if request_path else ""),
                    severity=Severity.CRITICAL if request_path else Severity.WARNING,
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Log, return or count the error",
                )

    def _check_blind_reraise(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(BLIND_RERAISE):
            return
        for function in ctx.unit.functions():
            if is_test_code(function):
                continue
            for offset, stmt in function.statements_of(StatementKind.RERAISE):
                if stmt.attr("context") or stmt.attr("message"):
                    continue
                ctx.emit(
                    BLIND_RERAISE,
                    function.decl_id,
                    f"Error from '{stmt.target or 'call'}' is re-raised without context",
                    confidence=Confidence.POSSIBLE,
                    offset=offset,
                    suggestion="Attach what was being attempted before propagating",
                )

    def _check_abort(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(ABORT_ON_ERROR):
            return
        for function in ctx.unit.functions():
            if is_test_code(function):
                continue
            startup = is_startup_code(function)
            request_path = is_request_path(function)
            for offset, stmt in function.statements_of(StatementKind.UNWRAP):
                if stmt.flag("infallible"):
                    continue
                form = stmt.attr("form", "unwrap")
                if startup:
                    severity, where = Severity.INFO, "startup code"
                else:
                    severity, where = Severity.CRITICAL, "a runtime path"
                ctx.emit(
                    ABORT_ON_ERROR,
                    function.decl_id,
                    f"'{form}' on '{stmt.target or 'value'}' aborts in {where} ('{function.name}')",
                    severity=severity,
                    confidence=Confidence.DEFINITE if request_path else Confidence.LIKELY,
                    offset=offset,
                    suggestion="Propagate the error to the caller instead of aborting",
                )

    def _check_classification(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(MISSING_ERROR_CLASSIFICATION):
            return
        min_variants = ctx.threshold(MISSING_ERROR_CLASSIFICATION, "min_variants")
        for enum in ctx.unit.enums():
            if not is_error_type(enum) or len(enum.variants) < min_variants:
                continue
            if any(m.name in CLASSIFIER_METHODS for m in ctx.unit.methods_of(enum.name)):
                continue
            ctx.emit(
                MISSING_ERROR_CLASSIFICATION,
                enum.decl_id,
                f"Error enum '{enum.name}' has {len(enum.variants)} variants but no recoverable/fatal predicate",
                confidence=Confidence.LIKELY,
                suggestion="Add is_retryable()/is_fatal() so callers can decide without matching variants",
            )

    def _check_display(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(ERROR_MISSING_DISPLAY):
            return
        candidates = [*ctx.unit.structs(), *ctx.unit.enums()]
        candidates.sort(key=lambda d: ctx.unit.order_key(d.decl_id))
        for decl in candidates:
            if not is_error_type(decl) or self._has_display(ctx.unit, decl):
                continue
            ctx.emit(
                ERROR_MISSING_DISPLAY,
                decl.decl_id,
                f"Error type '{decl.name}' has no Display implementation",
                confidence=Confidence.LIKELY,
                suggestion="Derive thiserror::Error or implement Display and Error",
            )

    def _check_retry(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNBOUNDED_RETRY):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.RETRY):
                if not any(stmt.attr(key) for key in RETRY_BOUND_ATTRS):
                    ctx.emit(
                        UNBOUNDED_RETRY,
                        function.decl_id,
                        f"Retry of '{stmt.target or 'operation'}' has no attempt limit",
                        severity=Severity.WARNING,
                        confidence=Confidence.LIKELY,
                        offset=offset,
                        suggestion="Cap the attempts and back off between them",
                    )
                elif not stmt.attr("backoff"):
                    ctx.emit(
                        UNBOUNDED_RETRY,
                        function.decl_id,
                        f"Retry of '{stmt.target or 'operation'}' has no backoff",
                        severity=Severity.INFO,
                        confidence=Confidence.POSSIBLE,
                        offset=offset,
                        suggestion="Back off exponentially with jitter",
                    )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _logged_after(function: FunctionDecl, offset: int, target: Optional[str]) -> bool:
        for later in function.statements[offset + 1:]:
            if later.kind == StatementKind.LOG and (later.target is None or later.target == target):
                return True
            if later.kind == StatementKind.RETURN and later.target == target and target is not None:
                return True
        return False

    @staticmethod
    def _has_display(unit: CompilationUnit, decl: Union[StructDecl, EnumDecl]) -> bool:
        if any(d in ERROR_DERIVES for d in decl.derives):
            return True
        return any(impl.trait_name in DISPLAY_TRAITS for impl in unit.impls_for(decl.name))
