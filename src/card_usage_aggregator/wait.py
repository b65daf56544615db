from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WaitResult:
    ok: bool
    condition: str
    waited_ms: int

    def __bool__(self) -> bool:
        return self.ok


def _sleep_ms(ms: int) -> None:
    time.sleep(ms / 1000)


def await_condition(
    predicate: Callable[[], bool],
    *,
    poll_interval_ms: int,
    timeout_ms: int,
    condition: str = "",
    sleep: Optional[Callable[[int], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> WaitResult:
    """
    Poll `predicate` until it returns True or `timeout_ms` elapses.

    Gmail never tells us when a view has finished rendering, so every wait in this package goes
    through here. The predicate is checked once up front, then every `poll_interval_ms`.
    A predicate that raises counts as "not yet" (elements get replaced mid re-render).

    `sleep` receives milliseconds; pass `page.wait_for_timeout` when driving Playwright.
    On timeout the result is falsy and names the condition; the caller decides whether that is fatal.
    """
    sleep_fn = sleep or _sleep_ms
    interval = max(1, int(poll_interval_ms))
    started = clock()

    while True:
        try:
            if predicate():
                waited = int(round((clock() - started) * 1000))
                return WaitResult(ok=True, condition=condition, waited_ms=waited)
        except Exception:
            logger.debug("Wait predicate raised (condition=%s); retrying.", condition, exc_info=True)

        waited = int(round((clock() - started) * 1000))
        if waited >= timeout_ms:
            logger.debug("Timed out after %dms waiting for: %s", waited, condition)
            return WaitResult(ok=False, condition=condition, waited_ms=waited)

        sleep_fn(min(interval, max(1, int(timeout_ms) - waited)))
