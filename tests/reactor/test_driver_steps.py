import asyncio

import pytest

from kreconcile.clients.errors import APICancelledError, APIInvalidError, APINotFoundError, \
                                      APIServerError, RetryExhaustedError
from kreconcile.reactor.demos import build_deployment, build_deployment_body, scale_and_retag
from kreconcile.reactor.driver import Reconciler, ResourceState, StepError
from kreconcile.structs.bodies import Body
from kreconcile.structs.configuration import Backoff
from kreconcile.structs.models import Deployment
from kreconcile.structs.references import DEPLOYMENTS, PODS


@pytest.fixture()
def reconciler(client):
    return Reconciler(client)


@pytest.fixture()
def desired():
    return build_deployment(name='demo-deployment', image='api-server:latest', replicas=2,
                            labels={'app': 'demo'}, namespace='default')


async def test_unknown_identities_are_absent(reconciler, deployment_identity):
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT
    assert reconciler.states == {}


async def test_creation(fake_api, reconciler, deployment_identity, desired, assert_logs):
    created = await reconciler.ensure_created(deployment_identity, desired)

    assert isinstance(created, Deployment)
    assert created.spec.replicas == 2
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT
    assert fake_api.get_object(DEPLOYMENTS, 'default', 'demo-deployment') is not None
    assert_logs([r"Create deployments.v1.apps default/demo-deployment: created\."])


async def test_creation_of_existing_object_is_idempotent(fake_api, reconciler, deployment_identity,
                                                         desired, assert_logs):
    fake_api.put_object(DEPLOYMENTS, {'metadata': {'name': 'demo-deployment', 'namespace': 'default'},
                                      'spec': {'replicas': 5}})

    existing = await reconciler.ensure_created(deployment_identity, desired)

    assert isinstance(existing, Deployment)
    assert existing.spec.replicas == 5  # the remote state, not the desired one.
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT
    assert [request.method for request in fake_api.requests] == ['POST', 'GET']
    assert_logs([r"Create .+: already present\."], prohibited=[r": created\."])


async def test_creation_failure_reverts_the_state(fake_api, reconciler, deployment_identity, desired):
    fake_api.faults.append((422, 'Invalid'))
    with pytest.raises(StepError) as err:
        await reconciler.ensure_created(deployment_identity, desired)

    assert err.value.identity == deployment_identity
    assert err.value.operation == 'create'
    assert isinstance(err.value.cause, APIInvalidError)
    assert err.value.__cause__ is err.value.cause
    assert 'create' in str(err.value)
    assert 'default/demo-deployment' in str(err.value)
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT


async def test_update(fake_api, reconciler, deployment_identity, desired, assert_logs):
    await reconciler.ensure_created(deployment_identity, desired)
    fake_api.conflicts = 2

    updated = await reconciler.ensure_updated(deployment_identity, scale_and_retag(1, 'nginx:1.13'),
                                              model=Deployment)

    assert updated.spec.replicas == 1
    assert updated.spec.template.spec.containers[0].image == 'nginx:1.13'
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT
    assert_logs([
        r"Update attempt #1/5 conflicted",
        r"Update attempt #2/5 conflicted",
        r"Update .+: updated\.",
    ])


async def test_update_of_absent_object_fails(reconciler, deployment_identity):
    with pytest.raises(StepError) as err:
        await reconciler.ensure_updated(deployment_identity, scale_and_retag(1, 'nginx:1.13'))
    assert err.value.operation == 'update'
    assert isinstance(err.value.cause, APINotFoundError)
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT


async def test_update_exhaustion_reverts_to_present(fake_api, client, deployment_identity, desired, settings):
    settings.retrying.backoff = Backoff(steps=2, duration=0, jitter=0)
    reconciler = Reconciler(client, settings=settings)
    await reconciler.ensure_created(deployment_identity, desired)
    fake_api.conflicts = 100

    with pytest.raises(StepError) as err:
        await reconciler.ensure_updated(deployment_identity, scale_and_retag(1, 'nginx:1.13'))
    assert isinstance(err.value.cause, RetryExhaustedError)
    assert err.value.cause.attempts == 2
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT


async def test_listing_reports_the_observed_field(fake_api, reconciler, assert_logs):
    fake_api.put_object(DEPLOYMENTS, {'metadata': {'name': 'a', 'namespace': 'ns1'}, 'spec': {'replicas': 1}})
    fake_api.put_object(DEPLOYMENTS, {'metadata': {'name': 'b', 'namespace': 'ns1'}, 'spec': {}})

    report = await reconciler.list_and_report(DEPLOYMENTS, 'ns1')

    assert report == [('a', 1), ('b', None)]
    assert_logs([
        r"List deployments in 'ns1': 'b' has no spec.replicas",
        r"List deployments in 'ns1': listed 2 items\.",
    ])


async def test_listing_with_custom_field_and_selector(fake_api, reconciler):
    fake_api.put_object(PODS, {'metadata': {'name': 'p1', 'namespace': 'ns1', 'labels': {'app': 'x'}},
                               'status': {'phase': 'Running'}})
    fake_api.put_object(PODS, {'metadata': {'name': 'p2', 'namespace': 'ns1', 'labels': {'app': 'y'}},
                               'status': {'phase': 'Pending'}})

    report = await reconciler.list_and_report(PODS, 'ns1', field='status.phase', selector={'app': 'x'})

    assert report == [('p1', 'Running')]


async def test_listing_of_empty_collection(reconciler, assert_logs):
    report = await reconciler.list_and_report(DEPLOYMENTS, 'ns1')
    assert report == []
    assert_logs([r"listed 0 items"])


async def test_listing_failure(fake_api, reconciler):
    fake_api.faults.extend([(500, 'InternalError')] * 3)
    with pytest.raises(StepError) as err:
        await reconciler.list_and_report(DEPLOYMENTS, 'ns1')
    assert err.value.operation == 'list'
    assert err.value.identity == DEPLOYMENTS
    assert isinstance(err.value.cause, APIServerError)


async def test_listing_of_mismatching_structure_fails(fake_api, reconciler):
    fake_api.put_object(DEPLOYMENTS, {'metadata': {'name': 'a', 'namespace': 'ns1'}, 'spec': 'weird'})
    with pytest.raises(StepError) as err:
        await reconciler.list_and_report(DEPLOYMENTS, 'ns1')
    assert err.value.operation == 'list'
    assert err.value.identity == DEPLOYMENTS
    assert isinstance(err.value.cause, TypeError)


async def test_deletion(fake_api, reconciler, deployment_identity, desired, assert_logs):
    await reconciler.ensure_created(deployment_identity, desired)

    deleted = await reconciler.ensure_deleted(deployment_identity)

    assert deleted is True
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT
    assert fake_api.requests[-1].data['propagationPolicy'] == 'Foreground'
    assert_logs([r"Delete .+: deleted\."])


async def test_deletion_of_absent_object_is_idempotent(reconciler, deployment_identity, assert_logs):
    deleted = await reconciler.ensure_deleted(deployment_identity)

    assert deleted is False
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT
    assert_logs([r"Delete .+: already absent\."], prohibited=[r": deleted\."])


async def test_deletion_failure_reverts_the_state(fake_api, reconciler, deployment_identity, desired):
    await reconciler.ensure_created(deployment_identity, desired)
    fake_api.faults.append((403, 'Forbidden'))

    with pytest.raises(StepError) as err:
        await reconciler.ensure_deleted(deployment_identity)
    assert err.value.operation == 'delete'
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT


async def test_transitional_states_are_visible_during_the_steps(fake_api, client, deployment_identity, desired):
    fake_api.delay = 0.1
    reconciler = Reconciler(client)
    task = asyncio.create_task(reconciler.ensure_created(deployment_identity, desired))
    await asyncio.sleep(0.05)
    assert reconciler.get_state(deployment_identity) is ResourceState.CREATING
    await task
    assert reconciler.get_state(deployment_identity) is ResourceState.PRESENT


async def test_sync_confirmation_before_each_step(reconciler, deployment_identity, desired):
    steps = []
    reconciler.confirm = steps.append

    await reconciler.ensure_created(deployment_identity, desired)
    await reconciler.list_and_report(DEPLOYMENTS, 'default')
    await reconciler.ensure_deleted(deployment_identity)

    assert steps == [
        'Create deployments.v1.apps default/demo-deployment',
        "List deployments in 'default'",
        'Delete deployments.v1.apps default/demo-deployment',
    ]


async def test_async_confirmation_before_each_step(reconciler, deployment_identity):
    steps = []

    async def confirm(step):
        await asyncio.sleep(0)
        steps.append(step)

    reconciler.confirm = confirm
    await reconciler.ensure_created(deployment_identity, build_deployment_body(
        name='demo-deployment', image='api-server:latest', replicas=2, labels={}, namespace='default'))
    assert steps == ['Create deployments.v1.apps default/demo-deployment']


async def test_failed_confirmation_prevents_the_step(fake_api, reconciler, deployment_identity, desired):
    def refuse(step):
        raise RuntimeError("refused")

    reconciler.confirm = refuse
    with pytest.raises(RuntimeError, match=r"refused"):
        await reconciler.ensure_created(deployment_identity, desired)
    assert not fake_api.requests
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT


async def test_stopper_aborts_the_steps(fake_api, client, deployment_identity, desired):
    fake_api.delay = 0.5
    stopper = asyncio.Event()
    asyncio.get_running_loop().call_later(0.1, stopper.set)
    reconciler = Reconciler(client, stopper=stopper)

    with pytest.raises(StepError) as err:
        await reconciler.ensure_created(deployment_identity, desired)
    assert isinstance(err.value.cause, APICancelledError)
    assert reconciler.get_state(deployment_identity) is ResourceState.ABSENT


async def test_schemaless_steps(fake_api, reconciler, deployment_identity):
    desired = build_deployment_body(name='demo-deployment', image='a', replicas=2,
                                    labels={'app': 'demo'}, namespace='default')
    created = await reconciler.ensure_created(deployment_identity, desired)
    assert isinstance(created, Body)

    updated = await reconciler.ensure_updated(deployment_identity, scale_and_retag(1, 'b'))
    assert isinstance(updated, Body)
    assert updated.get_nested('spec', 'replicas') == (1, True)
    assert updated.get_nested('spec', 'template', 'spec', 'containers', 0, 'image') == ('b', True)
