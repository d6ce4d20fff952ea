import asyncio
from typing import cast

from kreconcile.clients import api, auth
from kreconcile.helpers import typedefs
from kreconcile.structs import bodies, configuration, references


async def create_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        identity: references.ResourceIdentity,
        body: bodies.RawBody,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
        logger: typedefs.Logger = api.logger,
) -> bodies.RawBody:
    """
    Create an object and return its body as stored by the server.

    The object's name & namespace are taken from the identity if the body
    does not have them. The api version & kind are taken from the resource.
    """
    resource = identity.resource
    body = cast(bodies.RawBody, dict(body))  # shallow: for mutation of the top-level keys below.
    body['metadata'] = metadata = cast(bodies.RawMeta, dict(body.get('metadata', {})))
    metadata.setdefault('name', identity.name)
    if resource.namespaced and identity.namespace is not None:
        metadata.setdefault('namespace', identity.namespace)
    body.setdefault('apiVersion', resource.api_version)
    if resource.kind is not None:
        body.setdefault('kind', resource.kind)

    created_body: bodies.RawBody = await api.post(
        url=identity.get_url(named=False),
        payload=body,
        context=context,
        settings=settings,
        stopper=stopper,
        timeout=timeout,
        logger=logger,
    )
    return created_body
