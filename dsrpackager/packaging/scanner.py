"""Dependency version resolution over a set of binary artifacts."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from dsrpackager.packaging.readers import ArtifactInfo, ReaderRegistry
from dsrpackager.packaging.version import Version, max_version
from dsrpackager.utils.exceptions import ArtifactReadError, ScanError

CORE_DEPENDENCY = "DSRemapper.Core"
FRAMEWORK_DEPENDENCY = "DSRemapper.Framework"


def read_artifact(
        path: Union[str, Path],
        registry: Optional[ReaderRegistry] = None
) -> Optional[ArtifactInfo]:
    """Read one artifact with the reader registered for its extension.

    Args:
        path: Path to the artifact
        registry: Reader registry (defaults to ReaderRegistry.default())

    Returns:
        Artifact information, or None if no reader handles this file type

    Raises:
        ScanError: If the file cannot be opened or read as a module
    """
    path = Path(path)
    registry = registry or ReaderRegistry.default()

    reader = registry.reader_for(path)
    if reader is None:
        return None

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ScanError(f"Cannot open artifact {path}: {e}", file_path=str(path)) from e

    try:
        return reader.read(data)
    except ArtifactReadError as e:
        raise ScanError(f"Cannot read artifact {path}: {e}", file_path=str(path)) from e


def resolve_dependency_versions(
        files: Iterable[Union[str, Path]],
        initial_core: Optional[Version] = None,
        initial_framework: Optional[Version] = None,
        registry: Optional[ReaderRegistry] = None,
        core_name: str = CORE_DEPENDENCY,
        framework_name: str = FRAMEWORK_DEPENDENCY,
) -> Tuple[Optional[Version], Optional[Version]]:
    """Find the highest referenced version of the core and framework dependencies.

    Each file with a registered reader is read and its references to
    ``core_name`` and ``framework_name`` take part in a maximum reduction
    seeded with the initial values. References without a usable version do
    not vote. Nothing is defaulted: a dependency nobody references and
    without a seed stays None.

    Args:
        files: Artifacts to scan
        initial_core: Seed for the core dependency
        initial_framework: Seed for the framework dependency
        registry: Reader registry (defaults to ReaderRegistry.default())
        core_name: Exact name of the core dependency
        framework_name: Exact name of the framework dependency

    Returns:
        Tuple of (core version, framework version)

    Raises:
        ScanError: If any artifact cannot be read; the whole scan is aborted
    """
    registry = registry or ReaderRegistry.default()
    core_version = initial_core
    framework_version = initial_framework

    for file_path in files:
        info = read_artifact(file_path, registry)
        if info is None:
            continue

        for ref in info.references:
            if ref.version is None:
                continue
            if ref.name == core_name:
                core_version = max_version(core_version, ref.version)
            elif ref.name == framework_name:
                framework_version = max_version(framework_version, ref.version)

    return core_version, framework_version
