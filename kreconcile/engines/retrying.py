"""
Read-modify-write cycles with retries on the optimistic-concurrency conflicts.

K8s API stores a resource version in every object and compares it on writes.
If someone else has modified the object between our read and our write,
the write fails with HTTP 409 Conflict instead of silently overwriting
the other actor's changes. The cure is to re-read and re-apply the changes.

Since every attempt re-reads the object before writing it, the written body
always carries the resource version observed by the read of the same attempt.
"""
import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from kreconcile.clients import errors
from kreconcile.engines import sleeping
from kreconcile.helpers import typedefs
from kreconcile.structs import bodies, configuration, references

if TYPE_CHECKING:
    from kreconcile.clients import transport

logger = logging.getLogger(__name__)

# A transformation of a payload. It mutates the payload in place (and returns None),
# or returns a replacement payload. It can be called several times, once per attempt,
# so it must have no side effects beyond the payload itself.
Transform = Callable[[Any], Any]


async def retry_on_conflict(
        client: "transport.TransportClient",
        identity: references.ResourceIdentity,
        transform: Transform,
        *,
        policy: configuration.Backoff | None = None,
        model: type[bodies.Payload] | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger = logger,
) -> Any:
    """
    Get, transform, and update the object until no conflicts happen.

    Only the update conflicts are retried. All other errors, including those
    of the get-requests and of the transformation itself, are escalated
    immediately. When the attempts are over, :class:`errors.RetryExhaustedError`
    is raised with the last conflict as its cause.

    The backoff sleeps can be interrupted by the stopper; this aborts the whole
    cycle with :class:`errors.APICancelledError`. Same for the API calls.
    """
    if policy is None:
        policy = client.settings.retrying.backoff
    delays = policy.delays()
    for attempt in range(1, policy.steps + 1):
        idx = f"#{attempt}/{policy.steps}"
        payload = await client.get(identity, model, stopper=stopper)
        replacement = transform(payload)
        payload = replacement if replacement is not None else payload
        try:
            updated = await client.update(identity, payload, stopper=stopper)
        except errors.APIConflictError as e:
            delay = next(delays, None)
            if delay is None:
                logger.error(f"Update attempt {idx} conflicted; escalating: {identity}")
                raise errors.RetryExhaustedError(identity, attempt) from e
            logger.info(f"Update attempt {idx} conflicted; will retry in {delay:.3f}s: {identity}")
            unslept = await sleeping.sleep_or_wait(delay, stopper)
            if unslept is not None:
                raise errors.APICancelledError(f"Updating {identity} is cancelled.") from e
        else:
            if attempt > 1:
                logger.debug(f"Update attempt {idx} succeeded: {identity}")
            return updated

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.
