import asyncio
import dataclasses
import itertools
import logging
import re
import time
from typing import Any

import aiohttp.test_utils
import aiohttp.web
import pytest

from kreconcile.clients.auth import APIContext
from kreconcile.clients.transport import TransportClient
from kreconcile.structs.configuration import Backoff, ClientSettings
from kreconcile.structs.credentials import ConnectionInfo
from kreconcile.structs.references import DEPLOYMENTS, Resource, ResourceIdentity


@pytest.fixture(params=[True, False], ids=['namespaced', 'cluster'])
def resource(request):
    """ The resource used in the tests. Usually mocked, so it does not matter. """
    return Resource('kreconcile.dev', 'v1', 'kreconcileexamples', kind='KReconcileExample',
                    namespaced=request.param)


@pytest.fixture()
def namespace(resource):
    return 'ns' if resource.namespaced else None


@pytest.fixture()
def identity(resource, namespace):
    return ResourceIdentity(resource, namespace, 'name1')


@pytest.fixture()
def deployment_identity():
    return ResourceIdentity(DEPLOYMENTS, 'default', 'demo-deployment')


@pytest.fixture()
def settings():
    settings = ClientSettings()
    settings.networking.error_backoffs = [0, 0]
    settings.networking.request_timeout = 10
    settings.retrying.backoff = Backoff(steps=5, duration=0, jitter=0)
    return settings


#
# An in-memory fake of K8s API: it stores the objects, versions them on every write,
# rejects the stale writes, paginates the lists, and remembers all the requests.
#

KINDS = {'deployments': 'Deployment', 'services': 'Service', 'pods': 'Pod'}


@dataclasses.dataclass(frozen=True)
class Request:
    method: str
    path: str
    query: dict[str, str]
    data: Any


def status_response(code: int, reason: str, message: str = '') -> aiohttp.web.Response:
    return aiohttp.web.json_response({
        'apiVersion': 'v1',
        'kind': 'Status',
        'status': 'Failure' if code >= 400 else 'Success',
        'code': code,
        'reason': reason,
        'message': message,
    }, status=code)


class FakeAPI:

    def __init__(self) -> None:
        super().__init__()
        self.objects: dict[tuple[str, str, str, str | None, str], dict[str, Any]] = {}
        self.requests: list[Request] = []
        self.faults: list[tuple[int, str]] = []  # (status, reason) to respond with before the real handling.
        self.conflicts: int = 0  # how many next updates are raced by "other actors".
        self.delay: float = 0
        self._versions = itertools.count(1)

    def put_object(self, resource: Resource, body: dict[str, Any]) -> dict[str, Any]:
        """ Store an object as if it was created by someone else. """
        metadata = body.setdefault('metadata', {})
        namespace = metadata.get('namespace') if resource.namespaced else None
        metadata['resourceVersion'] = str(next(self._versions))
        key = (resource.group, resource.version, resource.plural, namespace, metadata['name'])
        self.objects[key] = body
        return body

    def get_object(self, resource: Resource, namespace: str | None, name: str) -> dict[str, Any] | None:
        return self.objects.get((resource.group, resource.version, resource.plural, namespace, name))

    @staticmethod
    def _parse(path: str) -> tuple[str, str, str, str | None, str | None]:
        parts = path.strip('/').split('/')
        if parts[0] == 'api':
            group, version, rest = '', parts[1], parts[2:]
        else:
            group, version, rest = parts[1], parts[2], parts[3:]
        namespace: str | None = None
        if rest[0] == 'namespaces' and len(rest) >= 3:
            namespace, rest = rest[1], rest[2:]
        plural = rest[0]
        name = rest[1] if len(rest) > 1 else None
        return group, version, plural, namespace, name

    async def handle(self, request: aiohttp.web.Request) -> aiohttp.web.StreamResponse:
        data = await request.json() if request.can_read_body else None
        self.requests.append(Request(request.method, request.path, dict(request.query), data))

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.faults:
            status, reason = self.faults.pop(0)
            return status_response(status, reason, 'Simulated failure.')

        group, version, plural, namespace, name = self._parse(request.path)
        api_version = f'{group}/{version}' if group else version
        kind = KINDS.get(plural, plural.capitalize())
        key = (group, version, plural, namespace, name)

        if request.method == 'GET' and name is None:
            selector = dict(pair.split('=', 1) for pair in request.query.get('labelSelector', '').split(',') if pair)
            items = [
                {k: v for k, v in obj.items() if k not in {'apiVersion', 'kind'}}
                for (g, ver, p, ns, _), obj in sorted(self.objects.items(), key=lambda kv: (kv[0][3] or '', kv[0][4]))
                if (g, ver, p) == (group, version, plural) and (namespace is None or ns == namespace)
                and all(obj.get('metadata', {}).get('labels', {}).get(k) == v for k, v in selector.items())
            ]
            offset = int(request.query.get('continue', '0'))
            limit = int(request.query.get('limit', '0')) or len(items)
            page = items[offset:offset + limit]
            more = offset + limit < len(items)
            return aiohttp.web.json_response({
                'apiVersion': api_version,
                'kind': f'{kind}List',
                'metadata': {'resourceVersion': '999', **({'continue': str(offset + limit)} if more else {})},
                'items': page,
            })

        elif request.method == 'GET':
            if key not in self.objects:
                return status_response(404, 'NotFound', f'{plural} "{name}" not found')
            return aiohttp.web.json_response(self.objects[key])

        elif request.method == 'POST':
            name = data['metadata']['name']
            key = (group, version, plural, namespace, name)
            if key in self.objects:
                return status_response(409, 'AlreadyExists', f'{plural} "{name}" already exists')
            body = dict(data, metadata=dict(data['metadata'], uid=f'uid-{name}'))
            body.setdefault('status', {})
            self.objects[key] = body
            body['metadata']['resourceVersion'] = str(next(self._versions))
            return aiohttp.web.json_response(body, status=201)

        elif request.method == 'PUT':
            if key not in self.objects:
                return status_response(404, 'NotFound', f'{plural} "{name}" not found')
            stored = self.objects[key]
            if self.conflicts > 0:
                self.conflicts -= 1
                stored['metadata']['resourceVersion'] = str(next(self._versions))
            if data.get('metadata', {}).get('resourceVersion') != stored['metadata']['resourceVersion']:
                return status_response(409, 'Conflict', 'the object has been modified')
            body = dict(data, metadata=dict(data['metadata']))
            body['metadata']['resourceVersion'] = str(next(self._versions))
            self.objects[key] = body
            return aiohttp.web.json_response(body)

        elif request.method == 'DELETE':
            if key not in self.objects:
                return status_response(404, 'NotFound', f'{plural} "{name}" not found')
            del self.objects[key]
            return status_response(200, '', '')

        return status_response(405, 'MethodNotAllowed')


@pytest.fixture()
def fake_api():
    return FakeAPI()


@pytest.fixture()
async def fake_server(fake_api):
    app = aiohttp.web.Application()
    app.router.add_route('*', '/api/{tail:.*}', fake_api.handle)
    app.router.add_route('*', '/apis/{tail:.*}', fake_api.handle)
    server = aiohttp.test_utils.TestServer(app)
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture()
def info(fake_server):
    return ConnectionInfo(server=str(fake_server.make_url('')).rstrip('/'), default_namespace='default')


@pytest.fixture()
async def context(info):
    context = APIContext(info)
    try:
        yield context
    finally:
        await context.close()


@pytest.fixture()
def client(context, settings):
    return TransportClient(context, settings=settings)


#
# Helpers for the timing checks.
#

@pytest.fixture()
def timer():
    return Timer()


class Timer:
    """
    A helper context manager to measure the time of the code-blocks.

    Usage:

        with Timer() as timer:
            do_something()
        assert timer.seconds < 5.0
    """

    def __init__(self):
        super().__init__()
        self._ts = None
        self._te = None

    @property
    def seconds(self):
        if self._ts is None:
            return None
        elif self._te is None:
            return time.perf_counter() - self._ts
        else:
            return self._te - self._ts

    def __repr__(self):
        status = 'new' if self._ts is None else 'running' if self._te is None else 'finished'
        return f'<Timer: {self.seconds}s ({status})>'

    def __enter__(self):
        self._ts = time.perf_counter()
        self._te = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._te = time.perf_counter()


#
# Helpers for the logging checks.
#

@pytest.fixture(autouse=True)
def _restore_logging():
    """ Revert the global logging setup after the CLI or configuration tests. """
    loggers = [logging.getLogger(name) for name in [None, 'asyncio', 'aiohttp']]
    saved = [(logger.handlers[:], logger.level, logger.propagate) for logger in loggers]
    yield
    for logger, (handlers, level, propagate) in zip(loggers, saved):
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate


@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns, prohibited=[], strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn

