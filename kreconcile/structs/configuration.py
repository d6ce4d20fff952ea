"""
All configuration flags, options, settings to fine-tune the client.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
import random
from collections.abc import Iterable, Iterator


@dataclasses.dataclass(frozen=True)
class Backoff:
    """
    An exponential backoff policy for the retried operations.

    The policy allows ``steps`` attempts in total, so there are ``steps - 1``
    sleeps between them. Every next sleep is ``factor`` times longer than
    the previous one, but never longer than ``cap`` (before the jitter).
    """

    steps: int = 10
    """
    The total number of attempts, including the first one.
    """

    duration: float = 0.01
    """
    The initial delay (in seconds) before the 2nd attempt.
    """

    factor: float = 2.0
    """
    The multiplier for every next delay.
    """

    jitter: float = 0.1
    """
    A random addition to every delay, as a fraction of that delay (0 for none).
    """

    cap: float | None = 1.0
    """
    The maximum delay (in seconds) before the jitter. ``None`` for no limit.
    """

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError(f"A backoff must allow at least 1 attempt; got {self.steps!r}.")

    def delays(self) -> Iterator[float]:
        """ Generate the delays between the attempts: ``steps - 1`` of them. """
        delay = self.duration
        for _ in range(self.steps - 1):
            capped = delay if self.cap is None else min(delay, self.cap)
            yield capped + (capped * self.jitter * random.random() if self.jitter else 0)
            delay *= self.factor


DEFAULT_BACKOFF = Backoff()


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the API requests, in seconds (``None`` for no timeout).
    """

    connect_timeout: float | None = None
    """
    A timeout for the connection establishment (``None`` to use the total one).
    """

    error_backoffs: Iterable[float] = (1, 2, 4)
    """
    Backoffs (in seconds) for the blind retries of the transient API errors:
    the network connectivity issues, the timeouts, the HTTP 5xx responses.
    The number of retries is the number of backoffs; the attempts are one more.
    An empty sequence disables the retries.
    """

    page_size: int | None = 500
    """
    How many items to request per page when listing (``None`` for no paging).
    All pages are fetched anyway; the size only affects the number of requests.
    """


@dataclasses.dataclass
class RetrySettings:

    backoff: Backoff = DEFAULT_BACKOFF
    """
    How to retry the read-modify-write cycles when the objects are modified
    by other actors between reading and writing (i.e. on HTTP 409 Conflict).
    """


@dataclasses.dataclass
class ReportingSettings:

    field: tuple[str, ...] = ('spec', 'replicas')
    """
    Which field of the listed objects to report next to their names.
    """


@dataclasses.dataclass
class ClientSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    retrying: RetrySettings = dataclasses.field(default_factory=RetrySettings)
    reporting: ReportingSettings = dataclasses.field(default_factory=ReportingSettings)
