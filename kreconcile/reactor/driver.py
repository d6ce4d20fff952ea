"""
The step-by-step driver of the resources towards their desired states.

Every step is one of create, update, list, delete, and is idempotent where
the API allows it: creating an existing object or deleting an absent one
is not a failure, but a reported outcome.

The driver keeps no copies of the objects, only their last known states.
The states are informational: they never prevent the steps from running,
since the remote objects can be changed by other actors at any time.

Nothing here prompts the user. If the steps must be paced (e.g. in the demos),
the caller injects a confirmation callback, which is awaited before each step.
"""
import asyncio
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

from kreconcile.clients import errors, transport
from kreconcile.engines import loggers, retrying
from kreconcile.structs import bodies, configuration, dicts, references

logger = logging.getLogger(__name__)

_T = TypeVar('_T')

# Called with a human-readable description of the next step. Can be sync or async.
Confirm = Callable[[str], Awaitable[None] | None]


class ResourceState(enum.Enum):
    ABSENT = 'absent'
    CREATING = 'creating'
    PRESENT = 'present'
    UPDATING = 'updating'
    DELETING = 'deleting'


class StepError(Exception):
    """ A step has failed for a reason other than the reconcilable ones. """

    def __init__(
            self,
            identity: references.ResourceIdentity | references.Resource,
            operation: str,
            cause: BaseException,
    ) -> None:
        super().__init__(identity, operation, cause)
        self.identity = identity
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        return f"Failed to {self.operation} {self.identity}: {self.cause}"


class Reconciler:
    """
    Drive the resources through their life cycle, one step at a time.

    One reconciler is meant for one workflow. Several workflows can run
    concurrently with their own reconcilers over the same shared client.
    """

    def __init__(
            self,
            client: transport.TransportClient,
            *,
            settings: configuration.ClientSettings | None = None,
            confirm: Confirm | None = None,
            stopper: asyncio.Event | None = None,
            logger: logging.Logger = logger,
    ) -> None:
        super().__init__()
        self.client = client
        self.settings = settings if settings is not None else client.settings
        self.confirm = confirm
        self.stopper = stopper
        self.logger = logger
        self.states: dict[references.ResourceIdentity, ResourceState] = {}

    def get_state(self, identity: references.ResourceIdentity) -> ResourceState:
        return self.states.get(identity, ResourceState.ABSENT)

    async def _confirm(self, description: str) -> None:
        if self.confirm is not None:
            result = self.confirm(description)
            if inspect.isawaitable(result):
                await result

    async def _step(
            self,
            identity: references.ResourceIdentity,
            operation: str,
            state: ResourceState,
            coro: Awaitable[_T],
    ) -> _T:
        """
        Run one step in a transitional state; revert the state if it fails.

        The reconcilable outcomes (e.g. "already exists") are handled
        by the step's coroutine itself; whatever escapes it is a failure.
        """
        previous = self.get_state(identity)
        self.states[identity] = state
        try:
            return await coro
        except Exception as e:
            self.states[identity] = previous
            raise StepError(identity, operation, e) from e

    async def ensure_created(
            self,
            identity: references.ResourceIdentity,
            desired: bodies.PayloadT,
    ) -> bodies.PayloadT:
        """
        Create the object, or get the existing one if it is already there.

        The existing object is returned as it is, not modified to match
        the desired state: that is the job of the updates.
        """
        await self._confirm(f"Create {identity}")
        log = loggers.ResourceLogger(identity, base=self.logger)

        async def create() -> bodies.PayloadT:
            try:
                created = await self.client.create(identity, desired, stopper=self.stopper)
            except errors.APIAlreadyExistsError:
                log.info(f"Create {identity}: already present.")
                existing: bodies.PayloadT = await self.client.get(
                    identity, type(desired), stopper=self.stopper)
                return existing
            else:
                log.info(f"Create {identity}: created.")
                return created

        result = await self._step(identity, 'create', ResourceState.CREATING, create())
        self.states[identity] = ResourceState.PRESENT
        return result

    async def ensure_updated(
            self,
            identity: references.ResourceIdentity,
            transform: retrying.Transform,
            *,
            model: type[bodies.Payload] | None = None,
    ) -> Any:
        """
        Modify the object with a transformation, retrying on conflicts.

        The object must exist: its absence is a failure of the step.
        """
        await self._confirm(f"Update {identity}")
        log = loggers.ResourceLogger(identity, base=self.logger)
        result = await self._step(identity, 'update', ResourceState.UPDATING, retrying.retry_on_conflict(
            self.client, identity, transform,
            policy=self.settings.retrying.backoff,
            model=model,
            stopper=self.stopper,
            logger=log,
        ))
        log.info(f"Update {identity}: updated.")
        self.states[identity] = ResourceState.PRESENT
        return result

    async def list_and_report(
            self,
            resource: references.Resource,
            namespace: str | None,
            *,
            field: dicts.FieldSpec = None,
            selector: Mapping[str, str] | str | None = None,
            model: type[bodies.Payload] | None = None,
    ) -> list[tuple[str | None, Any]]:
        """
        List the objects and report the observed value of a field in each.

        A missing field is reported as ``None`` and is not a failure:
        e.g. the objects of other kinds or of other origins can lack it.
        """
        field = field if field is not None else self.settings.reporting.field
        path = dicts.parse_field(field)
        where = f"{resource.plural} in {namespace!r}" if namespace else f"{resource.plural}"
        await self._confirm(f"List {where}")

        # Listing does not change the objects, so it does not change their states.
        report: list[tuple[str | None, Any]] = []
        try:
            payloads = await self.client.list(resource, namespace, selector, model,
                                              stopper=self.stopper)
            for payload in payloads:
                value, found = payload.get_nested(*path)
                if not found:
                    self.logger.debug(f"List {where}: {payload.name!r} has no {'.'.join(map(str, path))}.")
                report.append((payload.name, value if found else None))
        except Exception as e:
            raise StepError(resource, 'list', e) from e
        self.logger.info(f"List {where}: listed {len(report)} items.")
        return report

    async def ensure_deleted(
            self,
            identity: references.ResourceIdentity,
            propagation: references.PropagationPolicy = references.PropagationPolicy.FOREGROUND,
    ) -> bool:
        """
        Delete the object; return ``False`` if it was already absent.
        """
        await self._confirm(f"Delete {identity}")
        log = loggers.ResourceLogger(identity, base=self.logger)

        async def delete() -> bool:
            try:
                await self.client.delete(identity, propagation, stopper=self.stopper)
            except errors.APINotFoundError:
                log.info(f"Delete {identity}: already absent.")
                return False
            else:
                log.info(f"Delete {identity}: deleted.")
                return True

        result = await self._step(identity, 'delete', ResourceState.DELETING, delete())
        self.states[identity] = ResourceState.ABSENT
        return result
