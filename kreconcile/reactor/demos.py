"""
The demo workflows: a deployment's life cycle from creation to deletion.

There are two flavours of the same workflow: over the typed payloads
(with a service and a look at the pods in the middle), and over
the schema-less payloads (the deployment only). Both are built from
the same driver steps; the demo data is passed in by the caller.
"""
import dataclasses
from collections.abc import Mapping
from typing import Any

from kreconcile.engines import retrying
from kreconcile.reactor import driver
from kreconcile.structs import bodies, models, references

DEFAULT_NAME = 'demo-deployment'
DEFAULT_IMAGE = 'shuvo14/api-server'
DEFAULT_NEW_IMAGE = 'nginx:1.13'
DEFAULT_REPLICAS = 2
DEFAULT_NEW_REPLICAS = 1
DEFAULT_LABELS: Mapping[str, str] = {'app': 'bookapiserver'}
DEFAULT_SERVICE_NAME = 'bookapiserver'
DEFAULT_SERVICE_PORT = 3200
CONTAINER_NAME = 'web'
CONTAINER_PORT = 8080

CONTAINERS_PATH = ('spec', 'template', 'spec', 'containers')


@dataclasses.dataclass
class DemoReport:
    """ What the demo has observed on its way. """
    deployment: references.ResourceIdentity
    created: bool = False
    updated: bool = False
    deleted: bool = False
    service: references.ResourceIdentity | None = None
    pods: list[str | None] = dataclasses.field(default_factory=list)
    deployments: list[tuple[str | None, Any]] = dataclasses.field(default_factory=list)


def build_deployment(
        name: str,
        image: str,
        replicas: int,
        labels: Mapping[str, str],
        namespace: str | None = None,
) -> models.Deployment:
    return models.Deployment(
        metadata=models.ObjectMeta(name=name, namespace=namespace),
        spec=models.DeploymentSpec(
            replicas=replicas,
            selector=models.LabelSelector(match_labels=dict(labels)),
            template=models.PodTemplateSpec(
                metadata=models.ObjectMeta(labels=dict(labels)),
                spec=models.PodSpec(containers=[
                    models.Container(
                        name=CONTAINER_NAME,
                        image=image,
                        ports=[models.ContainerPort(
                            name='http',
                            protocol=models.PROTOCOL_TCP,
                            container_port=CONTAINER_PORT,
                        )],
                    ),
                ]),
            ),
        ),
    )


def build_deployment_body(
        name: str,
        image: str,
        replicas: int,
        labels: Mapping[str, str],
        namespace: str | None = None,
) -> bodies.Body:
    metadata: dict[str, Any] = {'name': name}
    if namespace is not None:
        metadata['namespace'] = namespace
    return bodies.Body({
        'apiVersion': 'apps/v1',
        'kind': 'Deployment',
        'metadata': metadata,
        'spec': {
            'replicas': replicas,
            'selector': {'matchLabels': dict(labels)},
            'template': {
                'metadata': {'labels': dict(labels)},
                'spec': {
                    'containers': [{
                        'name': CONTAINER_NAME,
                        'image': image,
                        'ports': [{
                            'name': 'http',
                            'protocol': models.PROTOCOL_TCP,
                            'containerPort': CONTAINER_PORT,
                        }],
                    }],
                },
            },
        },
    })


def build_service(
        name: str,
        selector: Mapping[str, str],
        port: int,
        target_port: int | str,
        namespace: str | None = None,
) -> models.Service:
    return models.Service(
        metadata=models.ObjectMeta(name=name, namespace=namespace),
        spec=models.ServiceSpec(
            selector=dict(selector),
            ports=[models.ServicePort(
                protocol=models.PROTOCOL_TCP,
                port=port,
                target_port=target_port,
            )],
        ),
    )


def scale_and_retag(replicas: int, image: str) -> retrying.Transform:
    """
    A transformation to scale the deployment and to change its first container's image.

    It works with both typed and schema-less payloads. A deployment without
    the containers cannot be re-tagged: it fails instead of guessing.
    """
    def transform(payload: Any) -> None:
        if isinstance(payload, models.Deployment):
            if payload.spec is None or payload.spec.template is None or payload.spec.template.spec is None:
                raise LookupError(f"The deployment {payload.name!r} has no pod template.")
            if not payload.spec.template.spec.containers:
                raise LookupError(f"The deployment {payload.name!r} has no containers.")
            payload.spec.replicas = replicas
            payload.spec.template.spec.containers[0].image = image
        else:
            containers, found = payload.get_nested(*CONTAINERS_PATH)
            if not found or not containers:
                raise LookupError(f"The deployment {payload.name!r} has no containers.")
            if not isinstance(containers, list):
                raise TypeError(f"The containers are not a list: {containers!r}")
            payload.set_nested(replicas, 'spec', 'replicas')
            payload.set_nested(image, *CONTAINERS_PATH, 0, 'image')
    return transform


async def run_typed_demo(
        reconciler: driver.Reconciler,
        namespace: str,
        *,
        name: str = DEFAULT_NAME,
        image: str = DEFAULT_IMAGE,
        new_image: str = DEFAULT_NEW_IMAGE,
        replicas: int = DEFAULT_REPLICAS,
        new_replicas: int = DEFAULT_NEW_REPLICAS,
        labels: Mapping[str, str] = DEFAULT_LABELS,
        service_name: str = DEFAULT_SERVICE_NAME,
        service_port: int = DEFAULT_SERVICE_PORT,
) -> DemoReport:
    deployment = references.ResourceIdentity(references.DEPLOYMENTS, namespace, name)
    service = references.ResourceIdentity(references.SERVICES, namespace, service_name)
    report = DemoReport(deployment=deployment, service=service)

    await reconciler.ensure_created(deployment, build_deployment(
        name=name, image=image, replicas=replicas, labels=labels, namespace=namespace))
    report.created = True

    await reconciler.ensure_created(service, build_service(
        name=service_name, selector=labels, port=service_port,
        target_port=CONTAINER_PORT, namespace=namespace))
    await reconciler.ensure_deleted(service, references.PropagationPolicy.BACKGROUND)

    pods = await reconciler.list_and_report(references.PODS, namespace,
                                            field=('status', 'phase'), model=models.Pod)
    report.pods = [pod_name for pod_name, _ in pods]

    await reconciler.ensure_updated(deployment, scale_and_retag(new_replicas, new_image),
                                    model=models.Deployment)
    report.updated = True

    report.deployments = await reconciler.list_and_report(
        references.DEPLOYMENTS, namespace, field=('spec', 'replicas'), model=models.Deployment)

    report.deleted = await reconciler.ensure_deleted(
        deployment, references.PropagationPolicy.FOREGROUND)
    return report


async def run_schemaless_demo(
        reconciler: driver.Reconciler,
        namespace: str,
        *,
        name: str = DEFAULT_NAME,
        image: str = DEFAULT_IMAGE,
        new_image: str = DEFAULT_NEW_IMAGE,
        replicas: int = DEFAULT_REPLICAS,
        new_replicas: int = DEFAULT_NEW_REPLICAS,
        labels: Mapping[str, str] = DEFAULT_LABELS,
) -> DemoReport:
    deployment = references.ResourceIdentity(references.DEPLOYMENTS, namespace, name)
    report = DemoReport(deployment=deployment)

    await reconciler.ensure_created(deployment, build_deployment_body(
        name=name, image=image, replicas=replicas, labels=labels, namespace=namespace))
    report.created = True

    await reconciler.ensure_updated(deployment, scale_and_retag(new_replicas, new_image))
    report.updated = True

    report.deployments = await reconciler.list_and_report(
        references.DEPLOYMENTS, namespace, field=('spec', 'replicas'))

    report.deleted = await reconciler.ensure_deleted(
        deployment, references.PropagationPolicy.FOREGROUND)
    return report
