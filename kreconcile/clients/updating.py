import asyncio

from kreconcile.clients import api, auth
from kreconcile.helpers import typedefs
from kreconcile.structs import bodies, configuration, references


async def replace_obj(
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
    Replace the whole object with the new body (HTTP PUT).

    The body must carry the ``metadata.resourceVersion`` as it was read.
    If the object has been modified since then, the server refuses the update
    with HTTP 409 Conflict, which is raised as :class:`errors.APIConflictError`.
    Without the resource version, the update is unconditional (last write wins).
    """
    replaced_body: bodies.RawBody = await api.put(
        url=identity.get_url(),
        payload=body,
        context=context,
        settings=settings,
        stopper=stopper,
        timeout=timeout,
        logger=logger,
    )
    return replaced_body
