"""
Helpers for orchestrating asyncio tasks.

The API calls can be interrupted in two ways. A cancellation of the whole task
is a regular asyncio cancellation and is never intercepted here. A stopper
(an event set by the caller) or a deadline interrupt only the awaited operation
and are reported as :class:`Interrupted`, so that the caller can continue.
"""
import asyncio
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, TypeVar

_T = TypeVar('_T')

# A workaround for a difference in tasks at runtime and type-checking time.
# Otherwise, at runtime: TypeError: 'type' object is not subscriptable.
if TYPE_CHECKING:
    Task = asyncio.Task[Any]
else:
    Task = asyncio.Task


class Interrupted(Exception):
    """ The awaited coroutine was stopped by the stopper or by the deadline. """


async def cancel_coro(
        coro: Coroutine[Any, Any, Any],
) -> None:
    """
    Close a never-started coroutine to prevent RuntimeWarnings.

    All coroutines must be awaited or closed. If it cannot be closed directly,
    it is cancelled gracefully via a dummy task.
    """
    try:
        coro.close()
    except AttributeError:
        corotask = asyncio.create_task(coro)
        corotask.cancel()
        try:
            await corotask
        except asyncio.CancelledError:
            pass  # cancellations are expected at this point


async def run_stoppable(
        coro: Coroutine[Any, Any, _T],
        *,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
) -> _T:
    """
    Await the coroutine, but abort it promptly if stopped or timed out.

    The aborted coroutine is cancelled and awaited before raising, so that
    nothing is left running in the background (e.g. the open connections).
    """
    if stopper is None and timeout is None:
        return await coro
    if stopper is not None and stopper.is_set():
        await cancel_coro(coro)
        raise Interrupted("Stopped before starting.")

    task: Task = asyncio.create_task(coro)
    waiter: Task | None = asyncio.create_task(stopper.wait()) if stopper is not None else None
    pending: set[Task] = {t for t in [task, waiter] if t is not None}
    try:
        _, pending = await asyncio.wait(pending, timeout=timeout,
                                        return_when=asyncio.FIRST_COMPLETED)
    finally:
        # Also when the whole task is cancelled: nothing should outlive this call.
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.wait(pending)

    if task.done() and not task.cancelled():
        return task.result()  # either a value or a re-raised error.
    elif stopper is not None and stopper.is_set():
        raise Interrupted("Stopped while running.")
    else:
        raise Interrupted(f"Timed out after {timeout}s.")
