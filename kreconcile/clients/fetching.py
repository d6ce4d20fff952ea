import asyncio
from collections.abc import Mapping

from kreconcile.clients import api, auth, errors
from kreconcile.helpers import typedefs
from kreconcile.structs import bodies, configuration, references


async def read_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        identity: references.ResourceIdentity,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
        logger: typedefs.Logger = api.logger,
) -> bodies.RawBody:
    """
    Read a single object; raise :class:`errors.APINotFoundError` if absent.
    """
    body: bodies.RawBody = await api.get(
        url=identity.get_url(),
        context=context,
        settings=settings,
        stopper=stopper,
        timeout=timeout,
        logger=logger,
    )
    return body


async def list_objs(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: str | None,
        selector: Mapping[str, str] | str | None = None,
        stopper: asyncio.Event | None = None,
        timeout: float | None = None,
        logger: typedefs.Logger = api.logger,
) -> list[bodies.RawBody]:
    """
    List all the objects of specific resource type.

    If the namespace is ``None``, all namespaces are listed (for namespaced
    resources) or the resource is cluster-scoped. The selector is either
    a pre-formatted label selector, or a dict of labels to match exactly.

    The list is paginated in K8s API if the page size is set. All the pages
    are fetched here until the end, and the combined list is returned.
    The timeout, if set, applies to the whole listing, not to each page.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None

    params: dict[str, str] = {}
    if isinstance(selector, Mapping):
        params['labelSelector'] = ','.join(f'{key}={val}' for key, val in selector.items())
    elif selector:
        params['labelSelector'] = selector
    if settings.networking.page_size:
        params['limit'] = str(settings.networking.page_size)

    items: list[bodies.RawBody] = []
    continue_token: str | None = None
    while True:
        page_params = dict(params, **({'continue': continue_token} if continue_token else {}))
        remaining = max(0.0, deadline - loop.time()) if deadline is not None else None
        if remaining == 0.0:
            raise errors.APICancelledError(f"Listing {resource!r} is cancelled: timed out.")

        rsp = await api.get(
            url=resource.get_url(namespace=namespace, params=page_params),
            context=context,
            settings=settings,
            stopper=stopper,
            timeout=remaining,
            logger=logger,
        )

        for item in rsp.get('items') or []:
            if 'kind' in rsp:
                item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
            if 'apiVersion' in rsp:
                item.setdefault('apiVersion', rsp['apiVersion'])
            items.append(item)

        continue_token = (rsp.get('metadata') or {}).get('continue')
        if not continue_token:
            break

    return items
