"""
Debouncing utilities for bursts of filesystem events.

This module provides a counter-based trailing debounce: every input
schedules its own deferred settle, and the callback fires only when the
last outstanding settle of a burst runs.
"""

import asyncio
import logging
from typing import Any, Callable, Optional, Set

from ..constants import ServerConstants

logger = logging.getLogger(__name__)


class BurstDebouncer:
    """
    Collapses a burst of triggers into a single callback invocation.

    Each call to trigger() increments an outstanding counter and schedules
    a settle `delay` seconds after that trigger. Each settle decrements the
    counter, and the callback runs exactly when it drops back to zero. A
    burst therefore fires once, `delay` seconds after its last trigger.

    Usage:
        debouncer = BurstDebouncer(delay=0.2, callback=notify)

        debouncer.trigger()  # t=0.00
        debouncer.trigger()  # t=0.05
        debouncer.trigger()  # t=0.12

        # notify() runs once, at t=0.32

    Not thread-safe: trigger() must be called on the loop's own thread.
    """

    def __init__(
        self,
        delay: float = ServerConstants.DEBOUNCE_DELAY_SECONDS,
        callback: Optional[Callable[[], Any]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize debouncer.

        Args:
            delay: Quiet period in seconds, measured from each trigger
            callback: Function called once per settled burst
            loop: Event loop to schedule settles on (default: running loop)
        """
        self.delay = delay
        self.callback = callback
        self.loop = loop
        self._outstanding = 0
        self._handles: Set[asyncio.TimerHandle] = set()

    @property
    def pending_count(self) -> int:
        """Number of triggers whose settle has not run yet."""
        return self._outstanding

    def trigger(self) -> None:
        """Register one input and schedule its settle."""
        loop = self.loop or asyncio.get_running_loop()
        self._outstanding += 1
        handle = None

        def settle():
            self._handles.discard(handle)
            self._settle()

        handle = loop.call_later(self.delay, settle)
        self._handles.add(handle)

    def _settle(self) -> None:
        self._outstanding -= 1
        if self._outstanding != 0:
            return

        if self.callback is None:
            return

        try:
            self.callback()
        except Exception as e:
            logger.exception(f"Error in debounced callback: {e}")

    def cancel(self) -> None:
        """Drop every scheduled settle without firing the callback."""
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
        self._outstanding = 0
