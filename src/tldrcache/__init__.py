"""tldrcache: checksum-verified local cache and resolver for tldr pages."""

from __future__ import annotations

import warnings
from importlib.metadata import PackageNotFoundError, version

_UNINSTALLED_VERSION = "0.0.0+unknown"

try:
    __version__ = version("tldrcache")
except PackageNotFoundError:
    # Imported from a checkout that was never pip-installed.
    warnings.warn(
        f"tldrcache is not installed; reporting version {_UNINSTALLED_VERSION}. "
        "Run 'pip install -e .' to get the real one.",
        RuntimeWarning,
        stacklevel=2,
    )
    __version__ = _UNINSTALLED_VERSION
