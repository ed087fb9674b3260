"""Plugin packaging and release catalog system.

Modules:
    version: Dotted version numbers
    readers: Readers extracting references from binary artifacts
    scanner: Dependency version resolution over packaged artifacts
    manifest: Plugin manifest record
    catalog: Persisted collection of manifests
    package: File selection and archive creation
    integrity: Archive hashes and download links
    signing: Detached catalog signatures
    tools: The packaging pipeline
    cli: Command-line interface
"""

from __future__ import annotations

from dsrpackager.packaging.catalog import ManifestCollection
from dsrpackager.packaging.integrity import build_download_links, hash_file
from dsrpackager.packaging.manifest import DownloadLink, Manifest, Platform
from dsrpackager.packaging.package import ArchiveBuilder, select_files
from dsrpackager.packaging.readers import ArtifactInfo, ArtifactReference, ReaderRegistry
from dsrpackager.packaging.scanner import resolve_dependency_versions
from dsrpackager.packaging.signing import sign_file, verify_file
from dsrpackager.packaging.version import Version

__all__ = [
    "ArchiveBuilder",
    "ArtifactInfo",
    "ArtifactReference",
    "DownloadLink",
    "Manifest",
    "ManifestCollection",
    "Platform",
    "ReaderRegistry",
    "Version",
    "build_download_links",
    "hash_file",
    "resolve_dependency_versions",
    "select_files",
    "sign_file",
    "verify_file",
]
