"""
Sleeping that can be cut short by the caller.
"""
import asyncio


async def sleep_or_wait(
        delay: float,
        event: asyncio.Event | None = None,
) -> float | None:
    """
    Sleep for the delay, or until the event is set, whichever happens first.

    Returns ``None`` if the whole delay was slept through. Otherwise, returns
    the remaining part of the delay (possibly ``0`` if the event was set at
    the very last moment), so that the caller can tell that it was woken up.
    """
    if event is None:
        await asyncio.sleep(delay)
        return None

    loop = asyncio.get_running_loop()
    deadline = loop.time() + delay
    try:
        await asyncio.wait_for(event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return None
    return max(0.0, deadline - loop.time())
