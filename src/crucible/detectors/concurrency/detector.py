"""
Concurrency Detector

Detects async and shared-state hazards from coarse statement sequences:
- Races on shared state and locks held across suspension points
- Lock-order cycles across tasks
- Unbounded spawning, I/O waits and channels
- Blocking calls in async code, lost task failures
- Cancellation-unsafe selects and repeated handle clones
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Dict, List, Sequence, Set, Tuple

from crucible.detectors.concurrency.constants import (
    BLOCKING_IN_ASYNC,
    CANCELLATION_UNSAFE,
    DEADLINE_ATTRS,
    EXCESSIVE_SHARED_CLONE,
    LOCK_ACROSS_SUSPEND,
    LOCK_ORDER_DEADLOCK,
    LOST_TASK_FAILURE,
    MAIN_TASK,
    SHARED_LOCK_MODES,
    SHARED_STATE_RACE,
    UNBOUNDED_CHANNEL,
    UNBOUNDED_IO_WAIT,
    UNBOUNDED_SPAWN,
)
from crucible.detectors.domain.detector import BaseDetector, Check, DetectionContext
from crucible.findings.domain.enums import Confidence, Domain
from crucible.model.application.graphs import find_cycles
from crucible.model.domain.enums import StatementKind
from crucible.model.domain.models import FunctionDecl, Statement


@dataclass(frozen=True)
class HeldLock:
    name: str
    acquired_at: int
    scope: int


def _task_of(stmt: Statement) -> str:
    return stmt.task or MAIN_TASK


def _is_exclusive(stmt: Statement) -> bool:
    return str(stmt.attr("mode", "exclusive")).lower() not in SHARED_LOCK_MODES


def _lock_timeline(function: FunctionDecl) -> List[Tuple[int, Statement, Tuple[HeldLock, ...]]]:
    """
    Walk a function body tracking locks held per task.

    Returns:
        (offset, statement, locks held by the statement's task before it runs)
    """
    held: Dict[str, List[HeldLock]] = defaultdict(list)
    timeline = []
    for offset, stmt in enumerate(function.statements):
        task = _task_of(stmt)
        timeline.append((offset, stmt, tuple(held[task])))

        if stmt.kind == StatementKind.LOCK_ACQUIRE and stmt.target:
            held[task].append(HeldLock(stmt.target, offset, stmt.scope))
        elif stmt.kind in (StatementKind.LOCK_RELEASE, StatementKind.DROP) and stmt.target:
            held[task] = [h for h in held[task] if h.name != stmt.target]
        elif stmt.kind == StatementKind.SCOPE_END:
            held[task] = [h for h in held[task] if h.scope != stmt.scope]
    return timeline


class ConcurrencyDetector(BaseDetector):
    """Detector for async and shared-state concurrency hazards."""

    detector_id = "concurrency"
    domain = Domain.CONCURRENCY

    def checks(self) -> Sequence[Tuple[str, Check]]:
        return (
            (SHARED_STATE_RACE, self._check_shared_state_race),
            (LOCK_ACROSS_SUSPEND, self._check_lock_across_suspend),
            (UNBOUNDED_SPAWN, self._check_unbounded_spawn),
            (BLOCKING_IN_ASYNC, self._check_blocking_in_async),
            (LOST_TASK_FAILURE, self._check_lost_task_failure),
            (LOCK_ORDER_DEADLOCK, self._check_lock_order),
            (UNBOUNDED_IO_WAIT, self._check_unbounded_io),
            (UNBOUNDED_CHANNEL, self._check_unbounded_channel),
            (CANCELLATION_UNSAFE, self._check_cancellation),
            (EXCESSIVE_SHARED_CLONE, self._check_shared_clones),
        )

    def _check_shared_state_race(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(SHARED_STATE_RACE):
            return

        synchronized: Set[str] = set()
        # state -> task key -> first unprotected mutation (decl_id, offset)
        mutations: Dict[str, Dict[str, Tuple[str, int]]] = defaultdict(dict)

        for function in ctx.unit.functions():
            has_untargeted_sync = False
            for offset, stmt, held in _lock_timeline(function):
                if stmt.kind == StatementKind.SYNC:
                    if stmt.target:
                        synchronized.add(stmt.target)
                    else:
                        has_untargeted_sync = True
                elif stmt.kind == StatementKind.SHARED_MUTATE and stmt.target:
                    if held or stmt.flag("atomic"):
                        continue
                    # Unlabelled statements run in their own function's task
                    task_key = stmt.task or f"{function.decl_id}:{MAIN_TASK}"
                    mutations[stmt.target].setdefault(task_key, (function.decl_id, offset))
            if has_untargeted_sync:
                for _, stmt in function.statements_of(StatementKind.SHARED_MUTATE):
                    if stmt.target:
                        synchronized.add(stmt.target)

        for state, by_task in mutations.items():
            if state in synchronized or len(by_task) < 2:
                continue
            sites = sorted(by_task.values(), key=lambda s: (ctx.unit.order_key(s[0]), s[1]))
            decl_id, offset = sites[1]
            ctx.emit(
                SHARED_STATE_RACE,
                decl_id,
                f"'{state}' is mutated by {len(by_task)} tasks without a lock or synchronization",
                confidence=Confidence.LIKELY,
                offset=offset,
                suggestion="Guard the state with a lock, use an atomic, or hand it off through a channel",
            )

    def _check_lock_across_suspend(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(LOCK_ACROSS_SUSPEND):
            return
        for function in ctx.unit.functions():
            reported: Set[int] = set()
            for offset, stmt, held in _lock_timeline(function):
                if stmt.kind != StatementKind.SUSPEND:
                    continue
                for lock in held:
                    acquire = function.statements[lock.acquired_at]
                    if lock.acquired_at in reported or not _is_exclusive(acquire):
                        continue
                    reported.add(lock.acquired_at)
                    ctx.emit(
                        LOCK_ACROSS_SUSPEND,
                        function.decl_id,
                        f"Lock '{lock.name}' acquired at {lock.acquired_at} is held across suspension "
                        f"'{stmt.target or 'await'}'",
                        confidence=Confidence.DEFINITE,
                        offset=offset,
                        suggestion="Release the guard before awaiting, or copy the data out first",
                    )

    def _check_unbounded_spawn(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNBOUNDED_SPAWN):
            return
        for function in ctx.unit.functions():
            if function.statements_of(StatementKind.BOUND):
                continue
            depth = 0
            for offset, stmt in enumerate(function.statements):
                if stmt.kind == StatementKind.LOOP_START:
                    depth += 1
                elif stmt.kind == StatementKind.LOOP_END:
                    depth = max(0, depth - 1)
                elif stmt.kind == StatementKind.SPAWN and (depth > 0 or stmt.flag("in_loop")):
                    if stmt.flag("bounded"):
                        continue
                    ctx.emit(
                        UNBOUNDED_SPAWN,
                        function.decl_id,
                        f"'{function.name}' spawns tasks in a loop with no concurrency bound",
                        confidence=Confidence.LIKELY,
                        offset=offset,
                        suggestion="Limit in-flight tasks with a semaphore or a bounded join set",
                    )

    def _check_blocking_in_async(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(BLOCKING_IN_ASYNC):
            return
        for function in ctx.unit.functions():
            if not function.is_async:
                continue
            for offset, stmt in function.statements_of(StatementKind.IO, StatementKind.CALL):
                if not stmt.flag("blocking") or stmt.flag("offloaded"):
                    continue
                ctx.emit(
                    BLOCKING_IN_ASYNC,
                    function.decl_id,
                    f"Blocking call '{stmt.target or stmt.kind.value}' inside async '{function.name}'",
                    confidence=Confidence.DEFINITE,
                    offset=offset,
                    suggestion="Use the async variant or move the call to a blocking pool",
                )

    def _check_lost_task_failure(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(LOST_TASK_FAILURE):
            return
        for function in ctx.unit.functions():
            observed = {
                stmt.target
                for _, stmt in function.statements_of(
                    StatementKind.JOIN, StatementKind.SUSPEND, StatementKind.MOVE, StatementKind.RETURN
                )
                if stmt.target
            }
            for offset, stmt in function.statements_of(StatementKind.SPAWN):
                if stmt.flag("supervised") or (stmt.target and stmt.target in observed):
                    continue
                ctx.emit(
                    LOST_TASK_FAILURE,
                    function.decl_id,
                    f"Task '{stmt.target or 'anonymous'}' is never joined; its failure is lost",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Keep the handle and await it, or supervise the task",
                )

    def _check_lock_order(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(LOCK_ORDER_DEADLOCK):
            return

        graph: Dict[str, List[str]] = {}
        first_edge: Dict[Tuple[str, str], Tuple[str, int]] = {}
        for function in ctx.unit.functions():
            for offset, stmt, held in _lock_timeline(function):
                if stmt.kind != StatementKind.LOCK_ACQUIRE or not stmt.target:
                    continue
                graph.setdefault(stmt.target, [])
                for lock in held:
                    if lock.name == stmt.target:
                        continue
                    successors = graph.setdefault(lock.name, [])
                    if stmt.target not in successors:
                        successors.append(stmt.target)
                    first_edge.setdefault((lock.name, stmt.target), (function.decl_id, offset))

        for cycle in find_cycles(graph):
            members = set(cycle)
            sites = sorted(
                (site for (a, b), site in first_edge.items() if a in members and b in members),
                key=lambda s: (ctx.unit.order_key(s[0]), s[1]),
            )
            decl_id, offset = sites[-1]
            ctx.emit(
                LOCK_ORDER_DEADLOCK,
                decl_id,
                f"Locks are acquired in conflicting orders: {' -> '.join(cycle + [cycle[0]])}",
                confidence=Confidence.LIKELY,
                offset=offset,
                suggestion="Acquire locks in one global order",
            )

    def _check_unbounded_io(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNBOUNDED_IO_WAIT):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.IO):
                if stmt.flag("local") or any(stmt.attr(key) for key in DEADLINE_ATTRS):
                    continue
                ctx.emit(
                    UNBOUNDED_IO_WAIT,
                    function.decl_id,
                    f"I/O '{stmt.target or 'call'}' has no timeout",
                    confidence=Confidence.POSSIBLE,
                    offset=offset,
                    suggestion="Wrap the call in a timeout",
                )

    def _check_unbounded_channel(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(UNBOUNDED_CHANNEL):
            return
        for function in ctx.unit.functions():
            for offset, stmt in function.statements_of(StatementKind.CHANNEL_CREATE):
                if stmt.attr("capacity") is not None or stmt.flag("bounded"):
                    continue
                ctx.emit(
                    UNBOUNDED_CHANNEL,
                    function.decl_id,
                    f"Channel '{stmt.target or 'channel'}' has no capacity",
                    confidence=Confidence.LIKELY,
                    offset=offset,
                    suggestion="Create a bounded channel so producers feel backpressure",
                )

    def _check_cancellation(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(CANCELLATION_UNSAFE):
            return
        for function in ctx.unit.functions():
            branches = [
                (offset, stmt, held)
                for offset, stmt, held in _lock_timeline(function)
                if stmt.kind == StatementKind.SELECT_BRANCH
            ]
            if not branches:
                continue
            any_cleanup = any(stmt.flag("cleanup") for _, stmt, _ in branches)
            for offset, stmt, held in branches:
                if stmt.flag("cleanup"):
                    continue
                if not (any_cleanup or held or stmt.attr("holds")):
                    continue
                ctx.emit(
                    CANCELLATION_UNSAFE,
                    function.decl_id,
                    f"Select branch '{stmt.target or offset}' skips cleanup when another branch wins",
                    confidence=Confidence.POSSIBLE,
                    offset=offset,
                    suggestion="Make the branch cancellation-safe or clean up in a drop guard",
                )

    def _check_shared_clones(self, ctx: DetectionContext) -> None:
        if not ctx.enabled(EXCESSIVE_SHARED_CLONE):
            return
        min_clones = ctx.threshold(EXCESSIVE_SHARED_CLONE, "min_clones")
        for function in ctx.unit.functions():
            clones = function.statements_of(StatementKind.CLONE)
            counts = Counter(stmt.target for _, stmt in clones if stmt.target)
            first_offset: Dict[str, int] = {}
            for offset, stmt in clones:
                if stmt.target:
                    first_offset.setdefault(stmt.target, offset)
            for target, count in counts.items():
                if count < min_clones:
                    continue
                ctx.emit(
                    EXCESSIVE_SHARED_CLONE,
                    function.decl_id,
                    f"'{target}' is cloned {count} times in '{function.name}'",
                    confidence=Confidence.POSSIBLE,
                    offset=first_offset[target],
                    suggestion="Clone once and pass references, or restructure ownership",
                )
