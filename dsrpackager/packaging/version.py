"""Dotted version numbers for artifacts and their references.

Versions follow the .NET assembly layout: two to four non-negative integer
components compared lexicographically, so ``1.2.0`` sorts before
``1.2.0.0``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, Union

_VERSION_RE = re.compile(r"^\d+(\.\d+){1,3}$")


@dataclass(frozen=True, order=True)
class Version:
    """An ordered tuple of version components.

    Attributes:
        parts: Components in major, minor, patch, build order
    """

    parts: Tuple[int, ...]

    def __post_init__(self) -> None:
        if not 2 <= len(self.parts) <= 4:
            raise ValueError(f"Version must have 2 to 4 components, got {len(self.parts)}")
        if any(not isinstance(p, int) or p < 0 for p in self.parts):
            raise ValueError(f"Version components must be non-negative integers: {self.parts}")

    @classmethod
    def of(cls, *parts: int) -> Version:
        return cls(tuple(parts))

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a dotted version string.

        Args:
            text: Version such as ``1.2``, ``1.2.3`` or ``1.2.3.4``

        Returns:
            Parsed version

        Raises:
            ValueError: If the text is not a dotted version
        """
        text = text.strip() if isinstance(text, str) else text
        if not isinstance(text, str) or not _VERSION_RE.match(text):
            raise ValueError(f"Invalid version: {text!r}")
        return cls(tuple(int(p) for p in text.split(".")))

    @classmethod
    def try_parse(cls, text: Optional[str]) -> Optional[Version]:
        if text is None:
            return None
        try:
            return cls.parse(text)
        except ValueError:
            return None

    @classmethod
    def coerce(cls, value: Union[Version, str, Iterable[int], None]) -> Optional[Version]:
        """Convert a string, tuple or Version to a Version (``None`` stays ``None``)."""
        if value is None or isinstance(value, Version):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        return cls(tuple(value))

    @property
    def major(self) -> int:
        return self.parts[0]

    @property
    def minor(self) -> int:
        return self.parts[1]

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)


def max_version(*candidates: Optional[Version]) -> Optional[Version]:
    """Return the highest present version.

    Absent candidates do not take part in the comparison; the result is
    ``None`` only when every candidate is absent.
    """
    present = [c for c in candidates if c is not None]
    return max(present) if present else None
