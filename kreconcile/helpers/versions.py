"""
Detecting the library's own version.

The codebase does not contain the version directly: it comes from the tags
of the versioning system (via setuptools-scm) into the package metadata.

The version is determined only once at startup when the code is loaded.
"""
import importlib.metadata

version: str | None = None

try:
    name, *_ = __name__.split('.')  # usually "kreconcile", unless renamed/forked.
    version = importlib.metadata.version(name)
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree, not installed.
