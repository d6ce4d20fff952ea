"""
All the structures coming from/to the Kubernetes API.

There are two kinds of payloads, both usable in all API operations:

* The schema-less :class:`Body`: an arbitrary nested document (dicts, lists,
  scalars), accessed and modified by explicit paths of fields.
* The typed payloads (see :mod:`kreconcile.structs.models`): the fixed-shape
  records with attributes, modified by plain attribute assignment.

Both of them are serialized to and deserialized from the same raw documents
(:class:`RawBody`) as sent to and received from the API.
"""
from collections.abc import Mapping
from typing import Any, Protocol, TypeVar

from typing_extensions import Self, TypedDict

from kreconcile.structs import dicts

Labels = Mapping[str, str]
Annotations = Mapping[str, str]


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    resourceVersion: str
    generation: int
    creationTimestamp: str
    deletionTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


class Payload(Protocol):
    """ What every payload can do, regardless of being typed or schema-less. """

    @classmethod
    def from_body(cls, raw: Mapping[str, Any]) -> Self: ...

    def to_body(self) -> RawBody: ...

    def get_nested(self, *path: dicts.FieldKey) -> tuple[Any, bool]: ...

    def set_nested(self, value: Any, *path: dicts.FieldKey) -> None: ...

    @property
    def name(self) -> str | None: ...

    @property
    def namespace(self) -> str | None: ...

    @property
    def resource_version(self) -> str | None: ...


PayloadT = TypeVar('PayloadT', bound=Payload)


class Body:
    """
    A schema-less payload: a nested document with path-based access.

    The absence of a field is not an error: all getters return a pair of
    the value and a flag whether it was found. Only the structural mismatches
    (e.g. a string or a number where a dict is expected) raise ``TypeError``.

    >>> body = Body({'spec': {}})
    >>> body.set_nested(1, 'spec', 'replicas')
    >>> body.get_nested('spec', 'replicas')
    (1, True)
    >>> body.get_nested('spec', 'paused')
    (None, False)
    """

    raw: dict[str, Any]

    def __init__(self, __src: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self.raw = dicts.deepcopy(__src) if __src is not None else {}

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.raw!r})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Body):
            return self.raw == other.raw
        else:
            return NotImplemented

    @classmethod
    def from_body(cls, raw: Mapping[str, Any]) -> Self:
        return cls(raw)

    def to_body(self) -> RawBody:
        result: RawBody = dicts.deepcopy(self.raw)
        return result

    def get_nested(self, *path: dicts.FieldKey) -> tuple[Any, bool]:
        return dicts.lookup(self.raw, path)

    def set_nested(self, value: Any, *path: dicts.FieldKey) -> None:
        dicts.ensure(self.raw, path, value)

    def remove_nested(self, *path: dicts.FieldKey) -> bool:
        return dicts.remove(self.raw, path)

    def nested_int(self, *path: dicts.FieldKey) -> tuple[int | None, bool]:
        value, found = self.get_nested(*path)
        if isinstance(value, bool):  # it is an int for Python, but not for us.
            raise TypeError(f"The field {path!r} has an unexpected type: {value!r}")
        return dicts.require_type(value, found, int, path)

    def nested_str(self, *path: dicts.FieldKey) -> tuple[str | None, bool]:
        return dicts.require_type(*self.get_nested(*path), str, path)

    def nested_list(self, *path: dicts.FieldKey) -> tuple[list[Any] | None, bool]:
        return dicts.require_type(*self.get_nested(*path), list, path)

    def nested_map(self, *path: dicts.FieldKey) -> tuple[dict[str, Any] | None, bool]:
        return dicts.require_type(*self.get_nested(*path), dict, path)

    @property
    def api_version(self) -> str | None:
        return self.nested_str('apiVersion')[0]

    @property
    def kind(self) -> str | None:
        return self.nested_str('kind')[0]

    @property
    def name(self) -> str | None:
        return self.nested_str('metadata', 'name')[0]

    @property
    def namespace(self) -> str | None:
        return self.nested_str('metadata', 'namespace')[0]

    @property
    def resource_version(self) -> str | None:
        return self.nested_str('metadata', 'resourceVersion')[0]

    @property
    def labels(self) -> Labels:
        return self.nested_map('metadata', 'labels')[0] or {}
