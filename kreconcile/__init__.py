"""
The main kreconcile module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kreconcile.clients.errors import (
    APIError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIAlreadyExistsError,
    APIInvalidError,
    APIServerError,
    APITooManyRequestsError,
    APITransportError,
    APICancelledError,
    RetryExhaustedError,
)
from kreconcile.clients.login import (
    login_with_kubeconfig,
    login_with_service_account,
    discover,
)
from kreconcile.clients.transport import (
    TransportClient,
)
from kreconcile.engines.loggers import (
    LogFormat,
    ResourceLogger,
    configure as configure_logging,
)
from kreconcile.engines.retrying import (
    Transform,
    retry_on_conflict,
)
from kreconcile.helpers.typedefs import (
    Logger,
)
from kreconcile.helpers.versions import (
    version as __version__,
)
from kreconcile.reactor.demos import (
    DemoReport,
    build_deployment,
    build_deployment_body,
    build_service,
    scale_and_retag,
    run_typed_demo,
    run_schemaless_demo,
)
from kreconcile.reactor.driver import (
    Confirm,
    Reconciler,
    ResourceState,
    StepError,
)
from kreconcile.structs.bodies import (
    RawBody,
    RawMeta,
    Payload,
    Body,
    Labels,
    Annotations,
)
from kreconcile.structs.configuration import (
    Backoff,
    DEFAULT_BACKOFF,
    ClientSettings,
    NetworkingSettings,
    RetrySettings,
    ReportingSettings,
)
from kreconcile.structs.credentials import (
    ConfigurationError,
    ConnectionInfo,
)
from kreconcile.structs.models import (
    Model,
    ObjectMeta,
    LabelSelector,
    ContainerPort,
    Container,
    PodSpec,
    PodTemplateSpec,
    DeploymentSpec,
    ServicePort,
    ServiceSpec,
    TypedPayload,
    Deployment,
    Service,
    Pod,
)
from kreconcile.structs.references import (
    Resource,
    ResourceIdentity,
    PropagationPolicy,
    DEPLOYMENTS,
    SERVICES,
    PODS,
    identify,
)

__all__ = [
    'APIError',
    'APIUnauthorizedError',
    'APIForbiddenError',
    'APINotFoundError',
    'APIConflictError',
    'APIAlreadyExistsError',
    'APIInvalidError',
    'APIServerError',
    'APITooManyRequestsError',
    'APITransportError',
    'APICancelledError',
    'RetryExhaustedError',
    'login_with_kubeconfig',
    'login_with_service_account',
    'discover',
    'TransportClient',
    'LogFormat',
    'ResourceLogger',
    'configure_logging',
    'Transform',
    'retry_on_conflict',
    'Logger',
    'DemoReport',
    'build_deployment',
    'build_deployment_body',
    'build_service',
    'scale_and_retag',
    'run_typed_demo',
    'run_schemaless_demo',
    'Confirm',
    'Reconciler',
    'ResourceState',
    'StepError',
    'RawBody',
    'RawMeta',
    'Payload',
    'Body',
    'Labels',
    'Annotations',
    'Backoff',
    'DEFAULT_BACKOFF',
    'ClientSettings',
    'NetworkingSettings',
    'RetrySettings',
    'ReportingSettings',
    'ConfigurationError',
    'ConnectionInfo',
    'Model',
    'ObjectMeta',
    'LabelSelector',
    'ContainerPort',
    'Container',
    'PodSpec',
    'PodTemplateSpec',
    'DeploymentSpec',
    'ServicePort',
    'ServiceSpec',
    'TypedPayload',
    'Deployment',
    'Service',
    'Pod',
    'Resource',
    'ResourceIdentity',
    'PropagationPolicy',
    'DEPLOYMENTS',
    'SERVICES',
    'PODS',
    'identify',
]
