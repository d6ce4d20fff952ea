"""
The HTTP-level side of the credentials: an SSL context, headers, a session.

All of this is built once per client from :class:`credentials.ConnectionInfo`
and then shared by all requests of all workflows using that client.
"""
import base64
import contextlib
import ssl
import tempfile

import aiohttp

from kreconcile.helpers import versions
from kreconcile.structs import credentials


class APIContext:
    """
    An aiohttp session bound to one API server, plus its URL-building info.
    """

    session: aiohttp.ClientSession
    server: str
    default_namespace: str | None

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self.session = session if session is not None else make_session(info)
        self.session.headers.setdefault('User-Agent', f'kreconcile/{versions.version or "unknown"}')
        self.server = info.server
        self.default_namespace = info.default_namespace

    async def close(self) -> None:
        await self.session.close()


def make_session(info: credentials.ConnectionInfo) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        connector=aiohttp.TCPConnector(limit=0, ssl=make_ssl_context(info)),
        headers=make_headers(info),
        auth=aiohttp.BasicAuth(info.username, info.password) if info.username and info.password else None,
    )


def make_headers(info: credentials.ConnectionInfo) -> dict[str, str]:
    match info.scheme, info.token:
        case None, None:
            return {}
        case None, token:
            return {'Authorization': f'Bearer {token}'}
        case scheme, None:
            return {'Authorization': scheme}
        case scheme, token:
            return {'Authorization': f'{scheme} {token}'}


def make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    """
    Verify the server by the CA, and identify ourselves by the client certificate.

    The inline certificate & key are only accepted by :mod:`ssl` as files,
    so they are written to temporary files, which live only while loading.
    """
    with contextlib.ExitStack() as stack:
        try:
            context = ssl.create_default_context(
                purpose=ssl.Purpose.SERVER_AUTH,
                cafile=info.ca_path,
                cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
            )
            certfile = _as_file(stack, info.certificate_path, info.certificate_data)
            keyfile = _as_file(stack, info.private_key_path, info.private_key_data)
            if certfile and keyfile:
                context.load_cert_chain(certfile=certfile, keyfile=keyfile)
        except (OSError, ssl.SSLError, ValueError) as e:
            raise credentials.ConfigurationError(f"Cannot load the SSL credentials: {e}") from e

    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _as_file(
        stack: contextlib.ExitStack,
        path: str | None,
        data: str | bytes | None,
) -> str | None:
    if path:
        return path
    elif data:
        file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
        file.write(decode_to_pem(data).encode('ascii'))
        return file.name
    else:
        return None


def decode_to_pem(data: str | bytes) -> str:
    """ Accept the PEM data as is, or base64-encoded (as in kubeconfigs). """
    match data:
        case str() if data.startswith('-----BEGIN '):
            return data
        case bytes() if data.startswith(b'-----BEGIN '):
            return data.decode('ascii')
        case _:
            return base64.b64decode(data).decode('ascii')
