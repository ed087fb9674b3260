"""Release packaging and catalog tooling for DSRemapper plugins."""

from __future__ import annotations

from dsrpackager.__version__ import __version__

__all__ = ["__version__"]
