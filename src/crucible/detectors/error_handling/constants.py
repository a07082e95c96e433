"""Error Handling Detection Constants"""

ERROR_CONTEXT_LOSS = "error-context-loss"
GENERIC_ERROR_CHANNEL = "generic-error-channel"
SILENT_ERROR_DISCARD = "silent-error-discard"
BLIND_RERAISE = "blind-reraise"
ABORT_ON_ERROR = "abort-on-error"
MISSING_ERROR_CLASSIFICATION = "missing-error-classification"
ERROR_MISSING_DISPLAY = "error-missing-display"
UNBOUNDED_RETRY = "unbounded-retry"

# =============================================================================
# FUNCTION CONTEXT
# =============================================================================

STARTUP_TAG = "startup"
REQUEST_PATH_TAG = "request_path"
TEST_TAG = "test"

# Names of functions that run once at process start
STARTUP_NAMES: frozenset[str] = frozenset({"main", "init", "setup", "bootstrap", "load_config", "configure"})

# Words marking a function as part of request handling
REQUEST_WORDS: frozenset[str] = frozenset({"handle", "handler", "serve", "route", "endpoint"})

# =============================================================================
# ERROR TYPES
# =============================================================================

# Error payloads that erase the failure's type
TEXT_ERROR_TYPES: frozenset[str] = frozenset({"String", "str", "text", "string"})

# Derives that give an error type Display and source chaining
ERROR_DERIVES: frozenset[str] = frozenset({"Error", "thiserror::Error", "Display", "derive_more::Display"})

DISPLAY_TRAITS: frozenset[str] = frozenset({"Display", "fmt::Display", "std::fmt::Display"})

# Methods that classify an error as worth retrying or fatal
CLASSIFIER_METHODS: frozenset[str] = frozenset({
    "is_recoverable", "is_retryable", "is_retriable", "is_fatal", "is_transient", "is_permanent", "retry_after",
})

ERROR_TYPE_TAG = "error"

# Statement attributes giving a retry loop an attempt limit
RETRY_BOUND_ATTRS: tuple[str, ...] = ("max_attempts", "bounded", "limit", "deadline")
