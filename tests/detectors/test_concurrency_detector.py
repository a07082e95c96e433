"""Tests for ConcurrencyDetector."""

import pytest

from crucible.detectors.concurrency.detector import ConcurrencyDetector
from crucible.findings.domain.enums import Confidence, Severity


@pytest.fixture
def detector():
    return ConcurrencyDetector()


def _fn(name, *statements, is_async=True):
    return {"kind": "function", "name": name, "async": is_async, "statements": list(statements)}


def _only(result, rule_id):
    return [f for f in result.findings if f.rule_id == rule_id]


class TestLockAcrossSuspend:

    def test_lock_held_across_await(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "refresh",
                {"kind": "lock_acquire", "target": "cache"},
                {"kind": "suspend", "target": "fetch"},
                {"kind": "lock_release", "target": "cache"},
            ),
        )

        findings = _only(result, "lock-across-suspend")
        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL
        assert findings[0].confidence == Confidence.DEFINITE
        assert findings[0].location.statement_offset == 1
        assert findings[0].is_critical

    def test_release_before_await(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "refresh",
                {"kind": "lock_acquire", "target": "cache"},
                {"kind": "lock_release", "target": "cache"},
                {"kind": "suspend", "target": "fetch"},
            ),
        )
        assert ids(result) == []

    def test_scope_end_releases_guard(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "refresh",
                {"kind": "lock_acquire", "target": "cache", "scope": 1},
                {"kind": "scope_end", "scope": 1},
                {"kind": "suspend", "target": "fetch"},
            ),
        )
        assert "lock-across-suspend" not in ids(result)

    def test_shared_read_lock_is_fine(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "refresh",
                {"kind": "lock_acquire", "target": "cache", "mode": "read"},
                {"kind": "suspend", "target": "fetch"},
            ),
        )
        assert "lock-across-suspend" not in ids(result)

    def test_one_finding_per_acquisition(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "refresh",
                {"kind": "lock_acquire", "target": "cache"},
                {"kind": "suspend", "target": "a"},
                {"kind": "suspend", "target": "b"},
            ),
        )
        assert len(_only(result, "lock-across-suspend")) == 1


class TestSharedState:

    def test_two_tasks_mutating_unprotected_state(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "run",
                {"kind": "shared_mutate", "target": "counter", "task": "a"},
                {"kind": "shared_mutate", "target": "counter", "task": "b"},
            ),
        )
        findings = _only(result, "shared-state-race")
        assert len(findings) == 1
        assert findings[0].location.statement_offset == 1
        assert findings[0].severity == Severity.CRITICAL

    def test_mutations_in_separate_functions(self, detector, detect, ids):
        result = detect(
            detector,
            _fn("inc", {"kind": "shared_mutate", "target": "counter"}),
            _fn("dec", {"kind": "shared_mutate", "target": "counter"}),
        )
        assert ids(result) == ["shared-state-race"]
        assert result.findings[0].location.declaration_id == "fn:dec"

    def test_single_task_is_not_a_race(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "run",
                {"kind": "shared_mutate", "target": "counter"},
                {"kind": "shared_mutate", "target": "counter"},
            ),
        )
        assert ids(result) == []

    @pytest.mark.parametrize(
        "guard",
        [
            {"kind": "sync", "target": "counter"},
            {"kind": "lock_acquire", "target": "mutex", "task": "b"},
        ],
    )
    def test_synchronized_state(self, detector, detect, ids, guard):
        result = detect(
            detector,
            _fn(
                "run",
                {"kind": "shared_mutate", "target": "counter", "task": "a"},
                guard,
                {"kind": "shared_mutate", "target": "counter", "task": "b"},
            ),
        )
        assert "shared-state-race" not in ids(result)


class TestLockOrder:

    def test_conflicting_lock_order(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "transfer",
                {"kind": "lock_acquire", "target": "accounts"},
                {"kind": "lock_acquire", "target": "ledger"},
            ),
            _fn(
                "audit",
                {"kind": "lock_acquire", "target": "ledger"},
                {"kind": "lock_acquire", "target": "accounts"},
            ),
        )
        findings = _only(result, "lock-order-deadlock")
        assert len(findings) == 1
        assert findings[0].location.declaration_id == "fn:audit"
        assert findings[0].location.statement_offset == 1

    def test_consistent_lock_order(self, detector, detect, ids):
        result = detect(
            detector,
            _fn("a", {"kind": "lock_acquire", "target": "x"}, {"kind": "lock_acquire", "target": "y"}),
            _fn("b", {"kind": "lock_acquire", "target": "x"}, {"kind": "lock_acquire", "target": "y"}),
        )
        assert "lock-order-deadlock" not in ids(result)


class TestTasksAndIo:

    def test_spawn_in_loop_without_bound(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "fan_out",
                {"kind": "loop_start"},
                {"kind": "spawn", "target": "worker"},
                {"kind": "loop_end"},
                {"kind": "join", "target": "worker"},
            ),
        )
        findings = _only(result, "unbounded-spawn")
        assert [f.location.statement_offset for f in findings] == [1]
        assert _only(result, "lost-task-failure") == []

    def test_spawn_with_semaphore(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "fan_out",
                {"kind": "bound", "target": "permits"},
                {"kind": "loop_start"},
                {"kind": "spawn", "target": "worker"},
                {"kind": "loop_end"},
                {"kind": "join", "target": "worker"},
            ),
        )
        assert ids(result) == []

    def test_lost_task_failure(self, detector, detect, ids):
        result = detect(detector, _fn("fire", {"kind": "spawn", "target": "worker"}))
        assert ids(result) == ["lost-task-failure"]

    def test_supervised_task(self, detector, detect, ids):
        result = detect(detector, _fn("fire", {"kind": "spawn", "target": "worker", "supervised": True}))
        assert ids(result) == []

    def test_blocking_call_in_async(self, detector, detect):
        result = detect(detector, _fn("load", {"kind": "call", "target": "std::fs::read", "blocking": True}))
        findings = _only(result, "blocking-in-async")
        assert len(findings) == 1
        assert findings[0].severity == Severity.CRITICAL

    def test_blocking_call_in_sync_function(self, detector, detect, ids):
        result = detect(
            detector,
            _fn("load", {"kind": "call", "target": "std::fs::read", "blocking": True}, is_async=False),
        )
        assert ids(result) == []

    @pytest.mark.parametrize("attrs, expected", [
        ({}, ["unbounded-io-wait"]),
        ({"timeout": 5}, []),
        ({"local": True}, []),
    ])
    def test_io_deadline(self, detector, detect, ids, attrs, expected):
        result = detect(detector, _fn("get", dict({"kind": "io", "target": "http"}, **attrs)))
        assert ids(result) == expected

    def test_unbounded_channel(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "pipe",
                {"kind": "channel_create", "target": "events"},
                {"kind": "channel_create", "target": "jobs", "capacity": 64},
            ),
        )
        assert ids(result) == ["unbounded-channel"]
        assert result.findings[0].location.statement_offset == 0


class TestSelectAndClones:

    def test_branch_skipping_cleanup(self, detector, detect):
        result = detect(
            detector,
            _fn(
                "serve",
                {"kind": "select_branch", "target": "shutdown", "cleanup": True},
                {"kind": "select_branch", "target": "request"},
            ),
        )
        findings = _only(result, "cancellation-unsafe")
        assert [f.location.statement_offset for f in findings] == [1]

    def test_all_branches_clean_up(self, detector, detect, ids):
        result = detect(
            detector,
            _fn(
                "serve",
                {"kind": "select_branch", "target": "shutdown", "cleanup": True},
                {"kind": "select_branch", "target": "request", "cleanup": True},
            ),
        )
        assert ids(result) == []

    def test_repeated_clones(self, detector, detect, ids):
        clone = {"kind": "clone", "target": "state"}
        result = detect(detector, _fn("setup", clone, clone, clone, is_async=False))
        assert ids(result) == ["excessive-shared-clone"]

    def test_clone_threshold_override(self, detector, detect, ids, config_with):
        clone = {"kind": "clone", "target": "state"}
        config = config_with({"rules": {"excessive-shared-clone": {"thresholds": {"min_clones": 4}}}})
        result = detect(detector, _fn("setup", clone, clone, clone, is_async=False), config=config)
        assert ids(result) == []
