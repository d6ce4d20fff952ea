import dataclasses
import enum
import urllib.parse
from collections.abc import Iterator, Mapping
from typing import Any


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A resource type as addressed in K8s API URLs: a group, a version, a plural.

    Two resources are the same if they have the same URL parts; the kind and
    the scope are informational (the kind goes to the bodies and the logs).
    """

    group: str
    """ An API group: e.g. ``"apps"``; the empty string ``""`` for the core API. """

    version: str
    """ A version within the group: e.g. ``"v1"``. """

    plural: str
    """ The URL segment of the collection: e.g. ``"deployments"``. """

    kind: str | None = None
    """ The ``kind`` field of the objects: e.g. ``"Deployment"``. """

    namespaced: bool = True
    """ ``False`` for the cluster-scoped resources, such as nodes. """

    def _key(self) -> tuple[str, str, str]:
        return self.group, self.version, self.plural

    def __hash__(self) -> int:
        return hash(self._key())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Resource):
            return self._key() == other._key()
        else:
            return NotImplemented

    def __repr__(self) -> str:
        return '.'.join(part for part in (self.plural, self.version, self.group) if part)

    def __iter__(self) -> Iterator[str]:
        return iter(self._key())

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            server: str | None = None,
            namespace: str | None = None,
            name: str | None = None,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        A URL of a collection (without a name) or of an object (with a name).

        For the namespaced resources, the collection can be either of one
        namespace or of the whole cluster (without a namespace); the objects
        always need a namespace. The cluster-scoped resources take none.
        """
        if not self.namespaced and namespace is not None:
            raise ValueError(f"Namespaces are not supported for cluster-scoped {self!r}.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError(f"Specific namespaces are required for objects of namespaced {self!r}.")

        segments = ['api', self.version] if not self.group else ['apis', self.group, self.version]
        if namespace is not None:
            segments += ['namespaces', namespace]
        segments += [self.plural] + ([name] if name is not None else [])

        url = '/' + '/'.join(segments)
        if params:
            url += '?' + urllib.parse.urlencode(params, encoding='utf-8')
        return url if server is None else server.rstrip('/') + url


@dataclasses.dataclass(frozen=True)
class ResourceIdentity:
    """
    An address of one specific object: its resource, namespace, and name.

    Once constructed, it is never changed. Updates of an object are targeted
    at the identity used (or returned) by the preceding reads.
    """
    resource: Resource
    namespace: str | None
    name: str

    def __str__(self) -> str:
        where = f'{self.namespace}/{self.name}' if self.namespace else self.name
        return f'{self.resource!r} {where}'

    @property
    def group(self) -> str:
        return self.resource.group

    @property
    def version(self) -> str:
        return self.resource.version

    @property
    def plural(self) -> str:
        return self.resource.plural

    @property
    def kind(self) -> str | None:
        return self.resource.kind

    def get_url(self, *, server: str | None = None, named: bool = True) -> str:
        return self.resource.get_url(
            server=server,
            namespace=self.namespace if self.resource.namespaced else None,
            name=self.name if named else None,
        )


def identify(resource: Resource, body: Mapping[str, Any]) -> ResourceIdentity:
    """ Build an identity of an object as described by its body's metadata. """
    metadata = body.get('metadata', {})
    name = metadata.get('name')
    if not name:
        raise ValueError(f"The body has no name to identify it by: {body!r}")
    namespace = metadata.get('namespace') if resource.namespaced else None
    return ResourceIdentity(resource=resource, namespace=namespace, name=name)


class PropagationPolicy(str, enum.Enum):
    """
    How the dependents are deleted relative to their owner.

    It is a pass-through value for K8s API; nothing is implemented locally.
    """
    FOREGROUND = 'Foreground'  # dependents first, then the owner.
    BACKGROUND = 'Background'  # the owner first, dependents later by the GC.
    ORPHAN = 'Orphan'          # dependents are never deleted.


DEPLOYMENTS = Resource('apps', 'v1', 'deployments', kind='Deployment', namespaced=True)
SERVICES = Resource('', 'v1', 'services', kind='Service', namespaced=True)
PODS = Resource('', 'v1', 'pods', kind='Pod', namespaced=True)
