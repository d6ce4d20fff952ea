"""
Typed payloads: fixed-shape records for the well-known resources.

The records are dataclasses with pythonic (snake_case) attributes. The wire
names (camelCase) are declared in the fields' metadata and are used only
when converting to/from the raw documents of the API.

All the fields unknown to the records (e.g. ``status`` details, server-side
defaults, managed fields) are preserved in ``extras`` of each record, and are
sent back as they were received: a typed read-modify-write cycle never loses
the fields that it does not know about.
"""
import dataclasses
import types
import typing
from collections.abc import Mapping
from typing import Any, ClassVar

from typing_extensions import Self

from kreconcile.structs import bodies, dicts

PROTOCOL_TCP = 'TCP'
PROTOCOL_UDP = 'UDP'


def wire(key: str, **kwargs: Any) -> Any:
    """ A dataclass field with an explicit name in the raw documents. """
    if 'default_factory' not in kwargs:
        kwargs.setdefault('default', None)
    return dataclasses.field(metadata={'key': key}, **kwargs)


def _unwrap_optional(hint: Any) -> Any:
    if typing.get_origin(hint) in (typing.Union, types.UnionType):
        args = [arg for arg in typing.get_args(hint) if arg is not type(None)]
        return args[0] if len(args) == 1 else Any
    return hint


def _load_value(hint: Any, value: Any) -> Any:
    hint = _unwrap_optional(hint)
    if value is None:
        return None
    elif isinstance(hint, type) and issubclass(hint, Model):
        return hint.from_body(value)
    elif typing.get_origin(hint) is list:
        (item_hint,) = typing.get_args(hint) or (Any,)
        return [_load_value(item_hint, item) for item in value]
    else:
        return dicts.deepcopy(value)


def _dump_value(value: Any) -> Any:
    if isinstance(value, Model):
        return value.to_body()
    elif isinstance(value, list):
        return [_dump_value(item) for item in value]
    else:
        return dicts.deepcopy(value)


@dataclasses.dataclass(kw_only=True)
class Model:
    """
    A base for all typed records with the generic (de)serialization.
    """

    extras: dict[str, Any] = dataclasses.field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def _wire_fields(cls) -> list[tuple[dataclasses.Field[Any], str]]:
        return [(field, field.metadata.get('key', field.name))
                for field in dataclasses.fields(cls) if field.name != 'extras']

    @classmethod
    def from_body(cls, raw: Mapping[str, Any]) -> Self:
        if not isinstance(raw, Mapping):
            raise TypeError(f"{cls.__name__} expects a mapping, got {raw!r}")
        hints = typing.get_type_hints(cls)
        kwargs: dict[str, Any] = {}
        known: set[str] = set()
        for field, key in cls._wire_fields():
            known.add(key)
            if key in raw:
                kwargs[field.name] = _load_value(hints[field.name], raw[key])
        extras = {key: dicts.deepcopy(val) for key, val in raw.items() if key not in known}
        return cls(extras=extras, **kwargs)

    def to_body(self) -> Any:
        raw: dict[str, Any] = dicts.deepcopy(self.extras)
        for field, key in self._wire_fields():
            value = getattr(self, field.name)
            if value is not None:
                raw[key] = _dump_value(value)
        return raw


@dataclasses.dataclass(kw_only=True)
class ObjectMeta(Model):
    name: str | None = wire('name')
    namespace: str | None = wire('namespace')
    labels: dict[str, str] | None = wire('labels')
    annotations: dict[str, str] | None = wire('annotations')
    resource_version: str | None = wire('resourceVersion')
    uid: str | None = wire('uid')
    generation: int | None = wire('generation')


@dataclasses.dataclass(kw_only=True)
class LabelSelector(Model):
    match_labels: dict[str, str] | None = wire('matchLabels')


@dataclasses.dataclass(kw_only=True)
class ContainerPort(Model):
    container_port: int | None = wire('containerPort')
    name: str | None = wire('name')
    protocol: str | None = wire('protocol')


@dataclasses.dataclass(kw_only=True)
class Container(Model):
    name: str | None = wire('name')
    image: str | None = wire('image')
    ports: list[ContainerPort] | None = wire('ports')


@dataclasses.dataclass(kw_only=True)
class PodSpec(Model):
    containers: list[Container] = wire('containers', default_factory=list)


@dataclasses.dataclass(kw_only=True)
class PodTemplateSpec(Model):
    metadata: ObjectMeta | None = wire('metadata')
    spec: PodSpec | None = wire('spec')


@dataclasses.dataclass(kw_only=True)
class DeploymentSpec(Model):
    replicas: int | None = wire('replicas')
    selector: LabelSelector | None = wire('selector')
    template: PodTemplateSpec | None = wire('template')


@dataclasses.dataclass(kw_only=True)
class ServicePort(Model):
    port: int | None = wire('port')
    name: str | None = wire('name')
    protocol: str | None = wire('protocol')
    target_port: int | str | None = wire('targetPort')


@dataclasses.dataclass(kw_only=True)
class ServiceSpec(Model):
    selector: dict[str, str] | None = wire('selector')
    ports: list[ServicePort] | None = wire('ports')
    type: str | None = wire('type')
    cluster_ip: str | None = wire('clusterIP')


@dataclasses.dataclass(kw_only=True)
class TypedPayload(Model):
    """
    A typed top-level object: its API version and kind are known in advance.

    Besides the attributes, the typed payloads also support the same path-based
    access as the schema-less payloads (by the wire names, not attributes),
    so that the generic code can work with both kinds of payloads.
    """
    api_version: ClassVar[str]
    kind: ClassVar[str]

    metadata: ObjectMeta = wire('metadata', default_factory=ObjectMeta)

    @classmethod
    def from_body(cls, raw: Mapping[str, Any]) -> Self:
        if not isinstance(raw, Mapping):
            raise TypeError(f"{cls.__name__} expects a mapping, got {raw!r}")
        # The fixed fields are not attributes, so they should not go to the extras.
        raw = {key: val for key, val in raw.items() if key not in {'apiVersion', 'kind'}}
        return super().from_body(raw)

    def to_body(self) -> bodies.RawBody:
        raw: bodies.RawBody = {'apiVersion': self.api_version, 'kind': self.kind}
        raw.update(super().to_body())
        return raw

    def get_nested(self, *path: dicts.FieldKey) -> tuple[Any, bool]:
        return dicts.lookup(self.to_body(), path)

    def set_nested(self, value: Any, *path: dicts.FieldKey) -> None:
        raw = self.to_body()
        dicts.ensure(raw, path, value)
        parsed = type(self).from_body(raw)
        for field in dataclasses.fields(self):
            setattr(self, field.name, getattr(parsed, field.name))

    @property
    def name(self) -> str | None:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def resource_version(self) -> str | None:
        return self.metadata.resource_version


@dataclasses.dataclass(kw_only=True)
class Deployment(TypedPayload):
    api_version: ClassVar[str] = 'apps/v1'
    kind: ClassVar[str] = 'Deployment'

    spec: DeploymentSpec | None = wire('spec')
    status: dict[str, Any] | None = wire('status')


@dataclasses.dataclass(kw_only=True)
class Service(TypedPayload):
    api_version: ClassVar[str] = 'v1'
    kind: ClassVar[str] = 'Service'

    spec: ServiceSpec | None = wire('spec')
    status: dict[str, Any] | None = wire('status')


@dataclasses.dataclass(kw_only=True)
class Pod(TypedPayload):
    api_version: ClassVar[str] = 'v1'
    kind: ClassVar[str] = 'Pod'

    spec: dict[str, Any] | None = wire('spec')
    status: dict[str, Any] | None = wire('status')
