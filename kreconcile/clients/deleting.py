import asyncio

from kreconcile.clients import api, auth
from kreconcile.helpers import typedefs
from kreconcile.structs import configuration, references


async def delete_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        identity: references.ResourceIdentity,
        propagation: references.PropagationPolicy | None = None,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
        logger: typedefs.Logger = api.logger,
) -> None:
    """
    Delete an object; the dependents are handled by the propagation policy.

    The absence of the object is not hidden here: it is raised as
    :class:`errors.APINotFoundError`, and the callers decide what it means.
    """
    options: dict[str, str] = {'apiVersion': 'v1', 'kind': 'DeleteOptions'}
    if propagation is not None:
        options['propagationPolicy'] = references.PropagationPolicy(propagation).value

    await api.delete(
        url=identity.get_url(),
        payload=options,
        context=context,
        settings=settings,
        stopper=stopper,
        timeout=timeout,
        logger=logger,
    )
