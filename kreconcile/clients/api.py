import asyncio
import collections.abc
import itertools
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from kreconcile.clients import auth, errors
from kreconcile.helpers import aiotasks, typedefs
from kreconcile.structs import configuration

logger = logging.getLogger(__name__)


async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        logger: typedefs.Logger = logger,
) -> aiohttp.ClientResponse:
    """
    Perform a request, blindly retrying it on the transient errors.

    The transient errors are the connection errors, the socket timeouts,
    and the server-side errors (HTTP 5xx & 429). All other API errors,
    specifically the client-side ones (HTTP 4xx), are escalated immediately.
    """
    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    backoffs = settings.networking.error_backoffs
    backoffs = backoffs if isinstance(backoffs, collections.abc.Iterable) else [backoffs]
    count = len(backoffs) + 1 if isinstance(backoffs, collections.abc.Sized) else None
    backoff: float | None
    for retry, backoff in enumerate(itertools.chain(backoffs, [None]), start=1):
        idx = f"#{retry}/{count}" if count is not None else f"#{retry}"
        what = f"{method.upper()} {url}"
        try:
            if retry > 1:
                logger.debug(f"Request attempt {idx}: {what}")

            response = await context.session.request(
                method=method,
                url=url,
                json=payload,
                headers=headers,
                timeout=timeout,
            )
            await errors.check_response(response)  # but do not parse it!

        except (aiohttp.ClientConnectionError, errors.APITransportError, asyncio.TimeoutError) as e:
            if backoff is None:  # i.e. the last or the only attempt.
                logger.error(f"Request attempt {idx} failed; escalating: {what} -> {e!r}")
                if isinstance(e, errors.APIError):
                    raise
                raise errors.APITransportError(f"{what} failed: {e!r}") from e
            else:
                logger.error(f"Request attempt {idx} failed; will retry: {what} -> {e!r}")
                await asyncio.sleep(backoff)  # non-awakable! but still cancellable.
        else:
            if retry > 1:
                logger.debug(f"Request attempt {idx} succeeded: {what}")
            return response

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.


async def _json(
        method: str,
        url: str,
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        payload: object | None,
        headers: Mapping[str, str] | None,
        logger: typedefs.Logger,
) -> Any:
    response = await request(
        method=method,
        url=url,
        context=context,
        settings=settings,
        payload=payload,
        headers=headers,
        logger=logger,
    )
    async with response:
        return await response.json()


async def call(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
        logger: typedefs.Logger = logger,
) -> Any:
    """
    Perform a request (with retries) and parse its JSON response.

    The whole call, including all retries and backoffs, can be interrupted
    by the stopper or by the timeout; in that case, the in-flight request
    is aborted and :class:`errors.APICancelledError` is raised.
    """
    try:
        return await aiotasks.run_stoppable(
            _json(method, url, context=context, settings=settings,
                  payload=payload, headers=headers, logger=logger),
            stopper=stopper,
            timeout=timeout,
        )
    except aiotasks.Interrupted as e:
        raise errors.APICancelledError(f"{method.upper()} {url} is cancelled: {e}") from e


async def get(url: str, **kwargs: Any) -> Any:
    return await call('get', url, **kwargs)


async def post(url: str, **kwargs: Any) -> Any:
    return await call('post', url, **kwargs)


async def put(url: str, **kwargs: Any) -> Any:
    return await call('put', url, **kwargs)


async def delete(url: str, **kwargs: Any) -> Any:
    return await call('delete', url, **kwargs)
