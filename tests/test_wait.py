from __future__ import annotations

from card_usage_aggregator.wait import await_condition


class FakeClock:
    """
    Deterministic clock: sleeping advances time instead of blocking.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[int] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, ms: int) -> None:
        self.sleeps.append(ms)
        self.now += ms / 1000


def test_returns_immediately_when_condition_already_holds() -> None:
    clock = FakeClock()
    res = await_condition(lambda: True, poll_interval_ms=100, timeout_ms=1000, sleep=clock.sleep, clock=clock)
    assert res
    assert res.waited_ms == 0
    assert clock.sleeps == []


def test_polls_until_condition_holds() -> None:
    clock = FakeClock()
    calls = {"n": 0}

    def predicate() -> bool:
        calls["n"] += 1
        return calls["n"] >= 4

    res = await_condition(predicate, poll_interval_ms=300, timeout_ms=10_000, sleep=clock.sleep, clock=clock)
    assert res.ok
    assert calls["n"] == 4
    assert clock.sleeps == [300, 300, 300]
    assert res.waited_ms == 900


def test_timeout_reports_condition() -> None:
    clock = FakeClock()
    res = await_condition(
        lambda: False,
        poll_interval_ms=500,
        timeout_ms=2_000,
        condition="rows visible",
        sleep=clock.sleep,
        clock=clock,
    )
    assert not res
    assert res.condition == "rows visible"
    assert res.waited_ms >= 2_000
    assert sum(clock.sleeps) == 2_000


def test_last_sleep_is_clamped_to_remaining_time() -> None:
    clock = FakeClock()
    res = await_condition(lambda: False, poll_interval_ms=300, timeout_ms=1_000, sleep=clock.sleep, clock=clock)
    assert not res
    assert clock.sleeps == [300, 300, 300, 100]


def test_predicate_errors_count_as_not_ready() -> None:
    clock = FakeClock()
    calls = {"n": 0}

    def predicate() -> bool:
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("element detached")
        return True

    res = await_condition(predicate, poll_interval_ms=100, timeout_ms=1_000, sleep=clock.sleep, clock=clock)
    assert res.ok
    assert calls["n"] == 3
