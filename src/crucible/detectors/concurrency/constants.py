"""Concurrency Detection Constants"""

SHARED_STATE_RACE = "shared-state-race"
LOCK_ACROSS_SUSPEND = "lock-across-suspend"
UNBOUNDED_SPAWN = "unbounded-spawn"
BLOCKING_IN_ASYNC = "blocking-in-async"
LOST_TASK_FAILURE = "lost-task-failure"
LOCK_ORDER_DEADLOCK = "lock-order-deadlock"
UNBOUNDED_IO_WAIT = "unbounded-io-wait"
UNBOUNDED_CHANNEL = "unbounded-channel"
CANCELLATION_UNSAFE = "cancellation-unsafe"
EXCESSIVE_SHARED_CLONE = "excessive-shared-clone"

# Lock modes that do not exclude other holders
SHARED_LOCK_MODES: frozenset[str] = frozenset({"read", "shared"})

# Statement attributes that give an I/O call a deadline
DEADLINE_ATTRS: tuple[str, ...] = ("bounded", "timeout", "deadline")

# Task key used for statements that run in the enclosing function
MAIN_TASK = "main"
