"""
Logging of the per-resource activities, in plain text or in JSON.

Every message logged via :class:`ResourceLogger` carries a reference to the
resource it is about. The formatters render it either as a text prefix
(``[namespace/name]``) or as a separate field of the JSON records.
"""
import copy
import enum
import logging
from collections.abc import Iterable, Mapping, MutableMapping
from typing import TYPE_CHECKING, Any, TextIO

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from kreconcile.helpers import typedefs
from kreconcile.structs import references

logger = logging.getLogger('kreconcile.objects')

# A key for object references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'object'

# The record's attribute with the reference; never rendered as a JSON field by itself.
REF_ATTR = 'k8s_ref'

# Upper bounds of the log levels for the "severity" field; anything above is fatal.
SEVERITIES: list[tuple[int, str]] = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]

# Libraries whose logs are only interesting when debugging this one.
NOISY_LOGGERS = ['asyncio', 'aiohttp']


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # only a marker, never used as a format string.


def get_severity(levelno: int) -> str:
    for limit, severity in SEVERITIES:
        if levelno <= limit:
            return severity
    return 'fatal'


def get_prefix(ref: Mapping[str, Any]) -> str:
    namespace, name = ref.get('namespace'), ref.get('name') or ''
    return f"[{namespace}/{name}]" if namespace else f"[{name}]"


class ObjectFormatter(logging.Formatter):
    """ A marker of our own formatters, to find our own handlers among others. """


class ObjectTextFormatter(ObjectFormatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """
    JSON records with the resource reference under its own key (``refkey``).
    """

    def __init__(
            self,
            *args: Any,
            refkey: str | None = None,
            **kwargs: Any,
    ) -> None:
        kwargs['reserved_attrs'] = {*kwargs.get('reserved_attrs', RESERVED_ATTRS), REF_ATTR}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = getattr(record, REF_ATTR, None)
        if ref is not None:
            log_record[self.refkey] = ref
        log_record.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, REF_ATTR, None)
        if ref is not None:
            record = copy.copy(record)  # other handlers must see the original message.
            record.msg = f"{get_prefix(ref)} {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ResourceLogger(typedefs.LoggerAdapter):
    """
    A logger of one resource: every record gets that resource's reference.

    The reference is shaped as an object reference in K8s API, so that it can
    be matched with the API objects in the log collectors as is.
    """

    def __init__(
            self,
            identity: references.ResourceIdentity,
            *,
            base: logging.Logger = logger,
    ) -> None:
        ref = {
            'apiVersion': identity.resource.api_version,
            'kind': identity.kind,
            'name': identity.name,
            'namespace': identity.namespace,
        }
        super().__init__(base, {REF_ATTR: ref})

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # The stdlib adapter replaces the call's extras with its own; we keep both.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


# Used to identify and remove our own handlers on re-configuration (e.g. in CLI tests).
if TYPE_CHECKING:
    class _KReconcileStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _KReconcileStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> None:
    """
    Log to stderr via one handler of our own, replacing the previous one if any.
    """
    handler = _KReconcileStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix,
                                        log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _KReconcileStreamHandler)]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    _silence(NOISY_LOGGERS, silent=not debug)


def _silence(names: Iterable[str], *, silent: bool) -> None:
    for name in names:
        library_logger = logging.getLogger(name)
        library_logger.propagate = not silent
        if silent:
            library_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = None,
        log_refkey: str | None = None,
) -> ObjectFormatter:
    """
    A formatter for the format; the text ones are prefixed by default, JSON is not.
    """
    match log_format:
        case LogFormat.JSON:
            cls = ObjectPrefixingJsonFormatter if log_prefix else ObjectJsonFormatter
            return cls(refkey=log_refkey)
        case LogFormat() | str():
            fmt = log_format.value if isinstance(log_format, LogFormat) else log_format
            text_cls = ObjectTextFormatter if log_prefix is False else ObjectPrefixingTextFormatter
            return text_cls(fmt)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
