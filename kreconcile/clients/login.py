"""
Rudimentary discovery of the connection credentials.

This is not a full-featured kubeconfig parser: no exec-plugins, no complex
auth-providers, no token refreshing. Only the data that can be used directly
by a generic HTTP client is extracted (see :mod:`kreconcile.structs.credentials`).

The sources are tried in order: an explicitly given kubeconfig file,
the in-cluster service account, and the ambient kubeconfig (``$KUBECONFIG``
or ``~/.kube/config``). If none of them is usable, it is a configuration error:
there is no half-configured client to continue with.
"""
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

import yaml

from kreconcile.helpers import typedefs
from kreconcile.structs import credentials

logger = logging.getLogger(__name__)

# The files mounted into every pod with a service account.
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
DEFAULT_KUBECONFIG = '~/.kube/config'


def _read_stripped(path: str) -> str | None:
    if not os.path.exists(path):
        return None
    with open(path, encoding='utf-8') as f:
        return f.read().strip() or None


def login_with_service_account(
        *,
        root: str = SERVICE_ACCOUNT_DIR,
) -> credentials.ConnectionInfo | None:
    """
    Use the pod's own service account, if there is one (i.e. its token file).
    """
    if not os.path.exists(os.path.join(root, 'token')):
        return None

    try:
        token = _read_stripped(os.path.join(root, 'token'))
        namespace = _read_stripped(os.path.join(root, 'namespace'))
    except OSError as e:
        raise credentials.ConfigurationError(f"Cannot read the service account: {e}") from e

    # The in-cluster API is announced via the env vars; the DNS name is a fallback.
    host = os.environ.get('KUBERNETES_SERVICE_HOST')
    port = os.environ.get('KUBERNETES_SERVICE_PORT', '443')
    ca_path = os.path.join(root, 'ca.crt')
    return credentials.ConnectionInfo(
        server=f'https://{host}:{port}' if host else 'https://kubernetes.default.svc',
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token,
        default_namespace=namespace,
    )


def _load_kubeconfig(path: str) -> dict[str, Any]:
    try:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise credentials.ConfigurationError(f"Cannot read the kubeconfig {path!r}: {e}") from e
    if not isinstance(config, dict):
        raise credentials.ConfigurationError(f"The kubeconfig {path!r} is not a mapping.")
    return config


def _as_mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise credentials.ConfigurationError(f"The kubeconfig {what} is not a mapping: {value!r}")
    return value


def _index_by_name(items: Iterable[Any] | None, key: str, into: dict[str, Any]) -> None:
    # With several files, the first definition of a name wins.
    for item in items or []:
        into.setdefault(item['name'], item.get(key) or {})


def login_with_kubeconfig(
        path: str | None = None,
) -> credentials.ConnectionInfo | None:
    """
    Use the current context of a kubeconfig, if there is one.

    If the path is not given, ``$KUBECONFIG`` (a list of paths) or the default
    ``~/.kube/config`` is used. Returns ``None`` if there is nothing to read.
    A listed file that cannot be read or parsed is an error, not a skip.
    """
    kubeconfig = path or os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        kubeconfig = DEFAULT_KUBECONFIG
    if not kubeconfig:
        return None

    current_context: str | None = None
    contexts: dict[str, Any] = {}
    clusters: dict[str, Any] = {}
    users: dict[str, Any] = {}
    for filename in (p.strip() for p in kubeconfig.split(os.pathsep)):
        if not filename:
            continue
        filename = os.path.expanduser(filename)
        config = _load_kubeconfig(filename)
        current_context = current_context or config.get('current-context')
        try:
            _index_by_name(config.get('contexts'), 'context', contexts)
            _index_by_name(config.get('clusters'), 'cluster', clusters)
            _index_by_name(config.get('users'), 'user', users)
        except (KeyError, TypeError, AttributeError) as e:
            raise credentials.ConfigurationError(f"The kubeconfig {filename!r} is malformed: {e!r}") from e

    if current_context is None:
        raise credentials.ConfigurationError("No current context is set in the kubeconfig.")
    try:
        context = _as_mapping(contexts[current_context], f"context {current_context!r}")
        cluster = _as_mapping(clusters[context['cluster']], f"cluster {context['cluster']!r}")
        user = _as_mapping(users.get(context.get('user'), {}), f"user {context.get('user')!r}")
        provider = _as_mapping(user.get('auth-provider') or {}, "auth-provider")
        provider_config = _as_mapping(provider.get('config') or {}, "auth-provider config")
    except (KeyError, TypeError) as e:
        raise credentials.ConfigurationError(f"The kubeconfig context is incomplete: {e}") from e

    if not cluster.get('server'):
        raise credentials.ConfigurationError(f"No server is set for the context {current_context!r}.")

    # Only the already issued tokens of the auth-providers; they are never refreshed here.
    provider_token = provider_config.get('access-token')
    return credentials.ConnectionInfo(
        server=cluster['server'],
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        default_namespace=context.get('namespace'),
    )


def discover(
        config_path: str | None = None,
        *,
        logger: typedefs.Logger = logger,
) -> credentials.ConnectionInfo:
    """
    Find the credentials: the explicit kubeconfig, then in-cluster, then ambient.

    An explicit kubeconfig that fails to load is reported and then superseded
    by the in-cluster configuration, if the latter is available.
    """
    explicit_error: credentials.ConfigurationError | None = None
    if config_path is not None:
        try:
            info = login_with_kubeconfig(config_path)
        except credentials.ConfigurationError as e:
            logger.warning(f"Cannot use the kubeconfig {config_path!r}; trying in-cluster: {e}")
            explicit_error = e
        else:
            if info is not None:
                logger.debug(f"Configured via the kubeconfig {config_path!r}.")
                return info

    info = login_with_service_account()
    if info is not None:
        logger.debug("Configured in-cluster via the service account.")
        return info

    if explicit_error is not None:
        raise credentials.ConfigurationError(
            f"Neither the kubeconfig {config_path!r} nor the in-cluster config are usable."
        ) from explicit_error

    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Configured via the ambient kubeconfig.")
        return info

    raise credentials.ConfigurationError("Cannot configure the client "
                                         "neither via kubeconfig, nor in-cluster.")
