"""Timer clocks used by the interpreter.

A clock provides four things:

- `now()`: current time in seconds (used for store timestamps),
- `call_later(delay_s, callback, *args)`: schedule a callback, returning a
  handle with `cancel()`,
- `await sleep(delay_s)`: the pacing wait used by `Interpreter.run`,
- `elapse(delay_s)`: account for a pacing wait taken synchronously by
  `Interpreter.step`.

`AsyncioClock` maps these onto the running event loop. `VirtualClock` keeps
its own time line so tests and one-shot runs are deterministic and do not
wait in real time.
"""

import asyncio
import heapq
import itertools
import time
from typing import Any, Callable, List, Tuple


class AsyncioClock:
    """Real time on top of the running asyncio loop."""

    def now(self) -> float:
        return time.time()

    def call_later(self, delay_s: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        # requires a running loop; synchronous stepping outside one should use VirtualClock
        loop = asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay_s), callback, *args)

    async def sleep(self, delay_s: float) -> None:
        await asyncio.sleep(max(0.0, delay_s))

    def elapse(self, delay_s: float) -> None:
        # real time passes on its own
        return None


class VirtualTimer:
    """Handle returned by `VirtualClock.call_later`."""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        if not self._cancelled:
            self._callback(*self._args)


class VirtualClock:
    """Deterministic clock: time only moves through `advance`, `sleep` or `elapse`.

    Due callbacks fire in (due time, scheduling order) order while time is
    advanced; a callback scheduled with zero delay during an advance fires
    within the same advance.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, VirtualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled())

    def call_later(self, delay_s: float, callback: Callable[..., Any], *args: Any) -> VirtualTimer:
        timer = VirtualTimer(self._now + max(0.0, delay_s), callback, args)
        heapq.heappush(self._queue, (timer.when, next(self._seq), timer))
        return timer

    def advance(self, delay_s: float) -> None:
        target = self._now + max(0.0, delay_s)
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            timer._run()
        self._now = target

    async def sleep(self, delay_s: float) -> None:
        self.advance(delay_s)
        # still give other tasks a turn
        await asyncio.sleep(0)

    def elapse(self, delay_s: float) -> None:
        self.advance(delay_s)
