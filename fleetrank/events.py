"""In-process publish/subscribe for realtime change notifications.

Subscribers receive small change notices and refetch whatever they show;
events never carry full row state.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class EventBus:
    """Channel-keyed subscriptions. Failing subscribers are dropped."""

    def __init__(self):
        self._subscriptions: Dict[int, Tuple[str, Callback]] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def subscribe(self, channel: str, callback: Callback) -> int:
        sub_id = next(self._ids)
        self._subscriptions[sub_id] = (channel, callback)
        logger.debug(f"Subscription {sub_id} added on {channel}")
        return sub_id

    def unsubscribe(self, sub_id: int) -> bool:
        return self._subscriptions.pop(sub_id, None) is not None

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        if channel is None:
            return len(self._subscriptions)
        return sum(1 for ch, _ in self._subscriptions.values() if ch == channel)

    async def publish(self, channel: str, event: Dict[str, Any]) -> int:
        """Deliver ``event`` to every subscriber of ``channel``.

        Returns the number of successful deliveries.
        """
        async with self._lock:
            targets = [
                (sub_id, cb) for sub_id, (ch, cb) in list(self._subscriptions.items())
                if ch == channel
            ]
            delivered = 0
            for sub_id, callback in targets:
                try:
                    result = callback(event)
                    if inspect.isawaitable(result):
                        await result
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        f"Dropping subscription {sub_id} on {channel}: {type(e).__name__}: {e}"
                    )
                    self._subscriptions.pop(sub_id, None)
            return delivered


bus: Optional[EventBus] = None


def get_bus() -> EventBus:
    """Get the process event bus, creating it on first use."""
    global bus
    if bus is None:
        bus = EventBus()
    return bus
