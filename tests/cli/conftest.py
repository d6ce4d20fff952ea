import functools

import click.testing
import pytest

from kreconcile.cli import main
from kreconcile.reactor.demos import DemoReport
from kreconcile.structs.references import DEPLOYMENTS, ResourceIdentity


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner()
    return runner


@pytest.fixture()
def invoke(runner):
    return functools.partial(runner.invoke, main)


@pytest.fixture()
def connect(mocker):
    client = mocker.MagicMock()
    return mocker.patch('kreconcile.clients.transport.TransportClient.connect',
                        mocker.AsyncMock(return_value=client))


@pytest.fixture()
def report():
    return DemoReport(
        deployment=ResourceIdentity(DEPLOYMENTS, 'default', 'demo-deployment'),
        created=True, updated=True, deleted=True,
        pods=['pod1', 'pod2'],
        deployments=[('demo-deployment', 1)],
    )


@pytest.fixture()
def typed_demo(mocker, report):
    return mocker.patch('kreconcile.reactor.demos.run_typed_demo', return_value=report)


@pytest.fixture()
def schemaless_demo(mocker, report):
    return mocker.patch('kreconcile.reactor.demos.run_schemaless_demo', return_value=report)
