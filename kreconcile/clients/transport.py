"""
A connected handle to the K8s API: the only thing the higher layers need.

It binds together the connection (an aiohttp session with credentials),
the settings, and the per-operation routines, and converts the payloads
between the raw documents and the typed or schema-less representations.

One client can be shared by many concurrently running workflows: it holds
no mutable state besides the HTTP session, which is safe for that.
"""
import asyncio
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any, overload

from typing_extensions import Self

from kreconcile.clients import auth, creating, deleting, fetching, login, updating
from kreconcile.helpers import typedefs
from kreconcile.structs import bodies, configuration, credentials, references

logger = logging.getLogger(__name__)


class TransportClient:

    def __init__(
            self,
            context: auth.APIContext,
            *,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger = logger,
    ) -> None:
        super().__init__()
        self.context = context
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.logger = logger

    @classmethod
    async def connect(
            cls,
            config_path: str | None = None,
            *,
            info: credentials.ConnectionInfo | None = None,
            settings: configuration.ClientSettings | None = None,
            logger: typedefs.Logger = logger,
    ) -> Self:
        """
        Construct a ready-to-use client from the discovered or given credentials.

        Any failure to construct it is a :class:`credentials.ConfigurationError`.
        It must be called in the event loop where the client will be used.
        """
        if info is None:
            info = login.discover(config_path, logger=logger)
        try:
            context = auth.APIContext(info)
        except credentials.ConfigurationError:
            raise
        except Exception as e:
            raise credentials.ConfigurationError(f"Cannot connect to {info.server!r}: {e}") from e
        return cls(context, settings=settings, logger=logger)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
            self,
            exc_type: type[BaseException] | None,
            exc_val: BaseException | None,
            exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        await self.context.close()

    @property
    def default_namespace(self) -> str | None:
        return self.context.default_namespace

    def _kwargs(self, stopper: asyncio.Event | None, timeout: float | None) -> dict[str, Any]:
        return dict(context=self.context, settings=self.settings, logger=self.logger,
                    stopper=stopper, timeout=timeout)

    async def create(
            self,
            identity: references.ResourceIdentity,
            payload: bodies.PayloadT,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> bodies.PayloadT:
        """ Create the object; return the payload as enriched by the server. """
        raw = await creating.create_obj(
            identity=identity,
            body=payload.to_body(),
            **self._kwargs(stopper, timeout),
        )
        return type(payload).from_body(raw)

    @overload
    async def get(
            self,
            identity: references.ResourceIdentity,
            model: None = None,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> bodies.Body: ...

    @overload
    async def get(
            self,
            identity: references.ResourceIdentity,
            model: type[bodies.PayloadT],
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> bodies.PayloadT: ...

    async def get(
            self,
            identity: references.ResourceIdentity,
            model: type[bodies.Payload] | None = None,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> bodies.Payload:
        """ Read the object as either a schema-less or a typed payload. """
        raw = await fetching.read_obj(
            identity=identity,
            **self._kwargs(stopper, timeout),
        )
        return (model or bodies.Body).from_body(raw)

    async def update(
            self,
            identity: references.ResourceIdentity,
            payload: bodies.PayloadT,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> bodies.PayloadT:
        """ Replace the object; fail on a stale resource version. """
        raw = await updating.replace_obj(
            identity=identity,
            body=payload.to_body(),
            **self._kwargs(stopper, timeout),
        )
        return type(payload).from_body(raw)

    async def list(
            self,
            resource: references.Resource,
            namespace: str | None,
            selector: Mapping[str, str] | str | None = None,
            model: type[bodies.Payload] | None = None,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> list[Any]:
        """ List all the matching objects, with all pages fetched. """
        raws = await fetching.list_objs(
            resource=resource,
            namespace=namespace,
            selector=selector,
            **self._kwargs(stopper, timeout),
        )
        cls = model or bodies.Body
        return [cls.from_body(raw) for raw in raws]

    async def delete(
            self,
            identity: references.ResourceIdentity,
            propagation: references.PropagationPolicy = references.PropagationPolicy.BACKGROUND,
            *,
            stopper: asyncio.Event | None = None,
            timeout: float | None = None,
    ) -> None:
        """ Delete the object; fail if it is absent. """
        await deleting.delete_obj(
            identity=identity,
            propagation=propagation,
            **self._kwargs(stopper, timeout),
        )
