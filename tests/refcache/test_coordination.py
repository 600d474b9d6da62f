"""Per-key single-flight coordination."""

from __future__ import annotations

import threading
import time

import pytest

from HtsRef.RefCache.coordination import SingleFlight


def test_sequential_calls_each_run() -> None:
    flight = SingleFlight()
    calls = []

    def work() -> int:
        calls.append(1)
        return len(calls)

    assert flight.do("k", work) == (1, False)
    assert flight.do("k", work) == (2, False)
    assert not flight.in_flight("k")


def _run_concurrently(flight: SingleFlight, fn, keys=("k", "k")):
    results = []
    errors = []

    def call(key: str) -> None:
        try:
            results.append(flight.do(key, fn))
        except Exception as exc:
            errors.append(exc)

    leader = threading.Thread(target=call, args=(keys[0],))
    leader.start()
    deadline = time.monotonic() + 5
    while not flight.in_flight(keys[0]) and time.monotonic() < deadline:
        time.sleep(0.005)
    follower = threading.Thread(target=call, args=(keys[1],))
    follower.start()
    return leader, follower, results, errors


def test_concurrent_callers_share_result() -> None:
    flight = SingleFlight()
    release = threading.Event()
    calls = []

    def work() -> str:
        calls.append(1)
        release.wait(timeout=5)
        return "payload"

    leader, follower, results, errors = _run_concurrently(flight, work)
    time.sleep(0.1)
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)

    assert errors == []
    assert len(calls) == 1
    assert sorted(results) == [("payload", False), ("payload", True)]


def test_exception_reaches_every_waiter() -> None:
    flight = SingleFlight()
    release = threading.Event()

    def work() -> None:
        release.wait(timeout=5)
        raise LookupError("no such reference")

    leader, follower, results, errors = _run_concurrently(flight, work)
    time.sleep(0.1)
    release.set()
    leader.join(timeout=5)
    follower.join(timeout=5)

    assert results == []
    assert [type(exc) for exc in errors] == [LookupError, LookupError]
    assert not flight.in_flight("k")


def test_distinct_keys_do_not_block_each_other() -> None:
    flight = SingleFlight()
    release = threading.Event()

    def slow() -> str:
        release.wait(timeout=5)
        return "slow"

    leader = threading.Thread(target=flight.do, args=("a", slow))
    leader.start()
    try:
        assert flight.do("b", lambda: "fast") == ("fast", False)
    finally:
        release.set()
        leader.join(timeout=5)


def test_leader_exception_propagates() -> None:
    with pytest.raises(ZeroDivisionError):
        SingleFlight().do("k", lambda: 1 / 0)
