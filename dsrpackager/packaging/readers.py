"""Readers that extract identity and references from binary artifacts.

A reader turns the raw bytes of a compiled module into an ``ArtifactInfo``:
the module's own name and version plus the (name, version) pairs of the
modules it references. Readers are chosen per file extension through a
``ReaderRegistry``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

import dnfile

from dsrpackager.packaging.version import Version, max_version
from dsrpackager.utils.exceptions import ArtifactReadError


@dataclass(frozen=True)
class ArtifactReference:
    """A declared reference to another module.

    Attributes:
        name: Referenced module name
        version: Referenced version, None if it could not be determined
    """

    name: str
    version: Optional[Version] = None


@dataclass
class ArtifactInfo:
    """Identity and references of one binary artifact."""

    name: Optional[str] = None
    version: Optional[Version] = None
    references: List[ArtifactReference] = field(default_factory=list)

    def find_reference(self, name: str) -> Optional[ArtifactReference]:
        """Get the first reference with exactly this name."""
        for ref in self.references:
            if ref.name == name:
                return ref
        return None

    def referenced_version(self, name: str) -> Optional[Version]:
        """Get the highest version among all references with exactly this name."""
        return max_version(*(ref.version for ref in self.references if ref.name == name))


@runtime_checkable
class ArtifactReader(Protocol):
    """Capability that reads an artifact's identity from its bytes."""

    def read(self, data: bytes) -> ArtifactInfo:
        """Read the artifact.

        Raises:
            ArtifactReadError: If the bytes are not a module this reader understands
        """
        ...


def _text(value: object) -> Optional[str]:
    # dnfile exposes heap strings as HeapItemString objects in recent releases
    value = getattr(value, "value", value)
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _row_version(row: object) -> Optional[Version]:
    try:
        return Version.of(
            int(getattr(row, "MajorVersion")),
            int(getattr(row, "MinorVersion")),
            int(getattr(row, "BuildNumber")),
            int(getattr(row, "RevisionNumber")),
        )
    except (AttributeError, TypeError, ValueError):
        return None


class DotNetAssemblyReader:
    """Reads ECMA-335 assembly metadata from a managed PE file."""

    def read(self, data: bytes) -> ArtifactInfo:
        try:
            pe = dnfile.dnPE(data=data)
        except Exception as e:
            raise ArtifactReadError(f"Not a PE module: {e}") from e

        try:
            if pe.net is None or pe.net.mdtables is None:
                raise ArtifactReadError("Module has no .NET metadata")

            tables = pe.net.mdtables
            info = ArtifactInfo()

            assembly = getattr(tables, "Assembly", None)
            if assembly is not None and assembly.rows:
                row = assembly.rows[0]
                info.name = _text(row.Name)
                info.version = _row_version(row)

            assembly_refs = getattr(tables, "AssemblyRef", None)
            for row in (assembly_refs.rows if assembly_refs is not None else []):
                ref_name = _text(row.Name)
                if not ref_name:
                    continue
                info.references.append(ArtifactReference(ref_name, _row_version(row)))

            return info
        except ArtifactReadError:
            raise
        except Exception as e:
            raise ArtifactReadError(f"Failed to read assembly metadata: {e}") from e
        finally:
            pe.close()


class ReaderRegistry:
    """Maps file extensions to artifact readers.

    Extensions are stored lower-case and without the leading dot.
    """

    def __init__(self, readers: Optional[Dict[str, ArtifactReader]] = None) -> None:
        self._readers: Dict[str, ArtifactReader] = {}
        for extension, reader in (readers or {}).items():
            self.register(extension, reader)

    @classmethod
    def default(cls) -> ReaderRegistry:
        return cls({"dll": DotNetAssemblyReader()})

    @staticmethod
    def _normalize(extension: str) -> str:
        return extension.lower().lstrip(".")

    def register(self, extension: str, reader: ArtifactReader) -> None:
        self._readers[self._normalize(extension)] = reader

    def unregister(self, extension: str) -> bool:
        return self._readers.pop(self._normalize(extension), None) is not None

    def reader_for(self, path: Union[str, Path]) -> Optional[ArtifactReader]:
        """Get the reader for a file, or None if its type is not scanned."""
        return self._readers.get(self._normalize(Path(path).suffix))

    def extensions(self) -> List[str]:
        return sorted(self._readers)
