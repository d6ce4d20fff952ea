"""
Typed errors of K8s API calls.

The callers never see aiohttp's exceptions directly: every failed call raises
one of the errors below, with aiohttp's exception (if any) chained as the cause.
The error class is chosen by the HTTP status refined by the ``reason`` of the
``Status`` document in the response body (e.g. HTTP 409 is either a conflict
of versions or an already existing object, which are handled differently).

Only the ``Status`` documents are exposed in the errors; other response bodies
are dropped unread, since they can contain anything, including sensitive data.
"""
import collections.abc
import json
from collections.abc import Collection
from typing import TYPE_CHECKING, Literal

import aiohttp
from typing_extensions import TypedDict

if TYPE_CHECKING:
    from kreconcile.structs import references


class RawStatusCause(TypedDict, total=False):
    field: str
    reason: str
    message: str


class RawStatusDetails(TypedDict, total=False):
    name: str
    group: str
    kind: str
    uid: str
    causes: Collection[RawStatusCause]
    retryAfterSeconds: int


# The "Status" kind of K8s API (meta/v1), as returned for most failures.
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    status: Literal["Success", "Failure"]
    code: int
    reason: str
    message: str
    details: RawStatusDetails


class APITransportError(Exception):
    """
    A transient failure of the transport: network, timeouts, server errors.

    It is raised only after all blind retries of the request are exhausted.
    """


class APICancelledError(Exception):
    """
    An API operation was aborted by the caller's stopper or deadline.

    Not to be confused with `asyncio.CancelledError`, which is not intercepted
    and is propagated as is when the whole task is cancelled.
    """


class APIError(Exception):
    """ A failed API call with its HTTP status and (if available) its Status document. """

    status: int
    payload: RawStatus | None

    def __init__(
            self,
            payload: RawStatus | None,
            *,
            status: int,
    ) -> None:
        super().__init__(payload.get('message') if payload else None, payload)
        self.status = status
        self.payload = payload

    @property
    def code(self) -> int | None:
        return self.payload.get('code') if self.payload else None

    @property
    def reason(self) -> str | None:
        return self.payload.get('reason') if self.payload else None

    @property
    def message(self) -> str | None:
        return self.payload.get('message') if self.payload else None

    @property
    def details(self) -> RawStatusDetails | None:
        return self.payload.get('details') if self.payload else None


class APIUnauthorizedError(APIError):
    pass


class APIForbiddenError(APIError):
    pass


class APINotFoundError(APIError):
    pass


class APIConflictError(APIError):
    """ The object was modified by someone else since it was read. """


class APIAlreadyExistsError(APIError):
    """ The object with the same name exists already. """


class APIInvalidError(APIError):
    """ The object failed the server-side validation. """


class APIServerError(APIError, APITransportError):
    """ HTTP 5xx: potentially transient, so retried with backoffs. """


class APITooManyRequestsError(APIError, APITransportError):
    """ HTTP 429: the server asks to slow down, so retried with backoffs. """


class RetryExhaustedError(Exception):
    """
    The read-modify-write cycle kept conflicting until the attempts ran out.

    The last conflict is chained as the cause of this error.
    """

    def __init__(self, identity: "references.ResourceIdentity", attempts: int) -> None:
        super().__init__(f"Conflicts persisted for {identity} after {attempts} attempt(s).")
        self.identity = identity
        self.attempts = attempts


def classify(status: int, payload: RawStatus | None) -> type[APIError]:
    reason = payload.get('reason') if payload else None
    return (
        APIUnauthorizedError if status == 401 else
        APIForbiddenError if status == 403 else
        APINotFoundError if status == 404 else
        APIAlreadyExistsError if status == 409 and reason == 'AlreadyExists' else
        APIConflictError if status == 409 else
        APIInvalidError if status == 422 or reason == 'Invalid' else
        APITooManyRequestsError if status == 429 else
        APIServerError if status >= 500 else
        APIError
    )


async def read_status(response: aiohttp.ClientResponse) -> RawStatus | None:
    try:
        payload = await response.json(content_type=None)
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        return None
    if isinstance(payload, collections.abc.Mapping) and payload.get('kind') == 'Status':
        return payload  # type: ignore[return-value]
    return None


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise a typed error for a failed response; do nothing for a successful one.
    """
    if response.status < 400:
        return

    # The body must be read first: raising the aiohttp's error releases the connection.
    payload = await read_status(response)
    cls = classify(response.status, payload)
    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
