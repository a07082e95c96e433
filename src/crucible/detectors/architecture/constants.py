"""
Architecture Detection Constants

Name tables used by the architecture checks. Keyword clusters for
god-entity live in the rule catalog so they can be overridden.
"""

# =============================================================================
# RULE IDS
# =============================================================================

GOD_ENTITY = "god-entity"
OVER_LAYERING = "over-layering"
TRAIT_PER_VERB = "trait-per-verb"
UNNECESSARY_NESTING = "unnecessary-nesting"
FAT_INTERFACE = "fat-interface"
CONCRETE_COUPLING = "concrete-coupling"
CYCLIC_COMPOSITION = "cyclic-composition"
SINGLE_IMPLEMENTOR_TRAIT = "single-implementor-trait"
NEWTYPE_WITHOUT_SEMANTICS = "newtype-without-semantics"
DEEP_TRAIT_HIERARCHY = "deep-trait-hierarchy"

# =============================================================================
# VERBS
# =============================================================================

# Method-name verbs grouped by intent; fat-interface counts distinct groups
VERB_GROUPS: dict[str, frozenset[str]] = {
    "read": frozenset({"get", "fetch", "load", "find", "read", "list", "query", "lookup", "select"}),
    "write": frozenset({"set", "save", "store", "put", "insert", "update", "delete", "remove", "write", "create", "add"}),
    "inspect": frozenset({"count", "exists", "has", "contains", "is", "len", "size"}),
    "validate": frozenset({"validate", "check", "verify", "ensure", "assert"}),
    "transform": frozenset({"process", "convert", "transform", "parse", "format", "render", "encode", "decode", "map"}),
    "lifecycle": frozenset({"init", "start", "stop", "open", "close", "shutdown", "reset", "connect", "disconnect"}),
    "notify": frozenset({"send", "notify", "emit", "publish", "dispatch", "broadcast", "log"}),
}

# Verbs that mark a single-method trait as a verb-trait
TRAIT_VERBS: frozenset[str] = frozenset().union(*VERB_GROUPS.values())

# =============================================================================
# TYPES
# =============================================================================

# Generic value containers: wrapping one of these adds no meaning by itself
VALUE_CONTAINERS: frozenset[str] = frozenset({
    "Value", "JsonValue", "HashMap", "BTreeMap", "HashSet", "BTreeSet", "Vec", "VecDeque", "Map",
})

# Pass-through wrappers peeled off before judging a field's concrete type
TRANSPARENT_WRAPPERS: frozenset[str] = frozenset({
    "Arc", "Rc", "Box", "Mutex", "RwLock", "RefCell", "Cell", "Option",
})

# Suffixes naming external-service types
SERVICE_SUFFIXES: tuple[str, ...] = (
    "Client", "Service", "Repository", "Repo", "Database", "Db", "Gateway",
    "Store", "Connection", "Pool", "Mailer", "Api", "Sender", "Queue",
)

# Trait tags that justify a single implementor
BOUNDARY_TAGS: frozenset[str] = frozenset({"ffi", "plugin", "boundary"})

# Struct tag marking a wrapper that upholds an invariant
INVARIANT_TAG = "invariant"
