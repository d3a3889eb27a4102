from __future__ import annotations

import time
from typing import Callable

Sleep = Callable[[float], None]
Clock = Callable[[], float]


def wait_for(
    condition: Callable[[], bool],
    timeout: float,
    interval: float,
    sleep: Sleep = time.sleep,
    clock: Clock = time.monotonic,
) -> bool:
    """Poll ``condition`` until it holds or ``timeout`` seconds have passed.

    The condition is always evaluated at least once and once more at the
    deadline. Returns whether it ended up true.
    """
    deadline = clock() + timeout
    while True:
        if condition():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))
