"""Plugin packaging pipeline.

Packaging runs in three independently guarded stages:

1. build: read the plugin, select and scan the build output, write the
   archive with its embedded manifest, hash it and attach download links;
2. catalog: merge the manifest into the catalog next to the archive;
3. sign: optionally write a detached signature of the catalog.

A failing stage is reported and recorded on the result; with ``strict``
the underlying exception is raised instead. A catalog failure never
removes an archive that was already built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pydantic
from pydantic import ConfigDict, Field, field_validator

from dsrpackager.core.config_manager import PackagerSettings
from dsrpackager.core.logging_manager import LoggingReporter, Reporter
from dsrpackager.packaging.catalog import ManifestCollection
from dsrpackager.packaging.integrity import build_download_links, hash_file
from dsrpackager.packaging.manifest import Manifest, Platform
from dsrpackager.packaging.package import ArchiveBuilder, select_files
from dsrpackager.packaging.readers import ArtifactInfo, ReaderRegistry
from dsrpackager.packaging.scanner import read_artifact, resolve_dependency_versions
from dsrpackager.packaging.signing import load_secrets_from_env, sign_file, signature_path, wipe
from dsrpackager.packaging.version import Version
from dsrpackager.utils.exceptions import (
    AlreadyExistsError,
    ArchiveWriteError,
    FileError,
    InvalidInputError,
    PackagerError,
    SigningError,
)

logger = logging.getLogger(__name__)


class PackageRequest(pydantic.BaseModel):
    """Inputs of one packaging run.

    Attributes:
        name: Plugin name recorded in the manifest
        plugin_path: The plugin's main binary
        input_dir: Build output directory (defaults to the plugin's directory)
        output_path: Archive to create
        description: Plugin description
        links: Download URL per platform
        overwrite: Replace an existing archive
        sign: Sign the catalog after updating it
        extensions: Extension allow-list (None uses the configured one)
        ignore: Ignore list relative to input_dir (None uses the configured one)
        strict: Raise failures instead of reporting them (None uses the configured value)
    """

    model_config = ConfigDict(frozen=True)

    name: str
    plugin_path: Path
    input_dir: Optional[Path] = None
    output_path: Path = Path('plugin.zip')
    description: str = ''
    links: Dict[Platform, str] = Field(default_factory=dict)
    overwrite: bool = False
    sign: bool = False
    extensions: Optional[List[str]] = None
    ignore: Optional[List[str]] = None
    strict: Optional[bool] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Plugin name must not be empty')
        return v

    @field_validator('links', mode='before')
    @classmethod
    def validate_links(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {Platform.parse(p): url for p, url in v.items()}
        return v

    @property
    def source_dir(self) -> Path:
        return self.input_dir if self.input_dir is not None else self.plugin_path.parent


@dataclass
class PackageResult:
    """Outcome of a packaging run."""

    archive_path: Path
    catalog_path: Path
    manifest: Optional[Manifest] = None
    digest: Optional[str] = None
    signature_path: Optional[Path] = None
    packaged_files: List[Path] = field(default_factory=list)
    archive_built: bool = False
    catalog_updated: bool = False
    errors: List[PackagerError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def signed(self) -> bool:
        return self.signature_path is not None

    @property
    def success(self) -> bool:
        return self.archive_built and self.catalog_updated and not self.errors


def _default_reporter() -> Reporter:
    return LoggingReporter(logger)


def validate_request(request: PackageRequest) -> None:
    """Check the inputs before anything is written.

    Raises:
        InvalidInputError: If the plugin, its directory or the output directory is missing
        AlreadyExistsError: If the archive exists and overwriting was not requested
    """
    if not request.plugin_path.is_file():
        raise InvalidInputError(f"Plugin file not found: {request.plugin_path}", file_path=str(request.plugin_path))
    if not request.source_dir.is_dir():
        raise InvalidInputError(f"Packaging directory doesn't exist: {request.source_dir}", file_path=str(request.source_dir))

    output_dir = request.output_path.parent
    if not output_dir.is_dir():
        raise InvalidInputError(f"Output directory doesn't exist: {output_dir}", file_path=str(output_dir))
    if request.output_path.exists() and not request.overwrite:
        raise AlreadyExistsError(f"Output file already exists: {request.output_path}", file_path=str(request.output_path))


def _seed_versions(primary: ArtifactInfo, settings: PackagerSettings) -> Tuple[Optional[Version], Optional[Version]]:
    return (
        primary.referenced_version(settings.core_dependency),
        primary.referenced_version(settings.framework_dependency),
    )


def build_package(
        request: PackageRequest,
        settings: PackagerSettings,
        reporter: Reporter,
        registry: Optional[ReaderRegistry] = None,
        builder: Optional[ArchiveBuilder] = None,
        catalog_path: Optional[Path] = None,
) -> Tuple[Manifest, str, List[Path]]:
    """Run the build stage.

    Returns:
        Tuple of (manifest with download links, archive digest, packaged files)

    Raises:
        PackagerError: If any step of the build fails
    """
    registry = registry or ReaderRegistry.default()
    builder = builder or ArchiveBuilder()

    reporter("Starting plugin packaging...", "info")
    reporter(f"Plugin folder: {request.source_dir}", "info")
    reporter(
        f"Plugin file: {request.output_path} ({'override' if request.overwrite else 'not override'})",
        "info"
    )

    validate_request(request)

    primary = read_artifact(request.plugin_path, registry) or ArtifactInfo()
    version = primary.version or Version.parse(settings.fallback_version)
    initial_core, initial_framework = _seed_versions(primary, settings)

    extensions = request.extensions if request.extensions is not None else settings.extensions
    ignore = request.ignore if request.ignore is not None else settings.ignore
    exclude = [request.output_path] + ([catalog_path] if catalog_path else [])
    selection = select_files(request.source_dir, extensions, ignore, exclude=exclude)

    for file_path in selection.packaged:
        reporter(f"{selection.relative(file_path)} (packaging...)", "debug")
    for file_path in selection.ignored:
        reporter(f"{selection.relative(file_path)} (ignored)", "debug")

    core_version, framework_version = resolve_dependency_versions(
        selection.packaged,
        initial_core=initial_core,
        initial_framework=initial_framework,
        registry=registry,
        core_name=settings.core_dependency,
        framework_name=settings.framework_dependency,
    )

    if settings.fallback_dependency_version is not None:
        fallback = Version.parse(settings.fallback_dependency_version)
        core_version = core_version or fallback
        framework_version = framework_version or fallback

    try:
        manifest = Manifest(
            name=request.name,
            version=version,
            core_version=core_version,
            framework_version=framework_version,
            description=request.description,
        )
    except pydantic.ValidationError as e:
        raise InvalidInputError(f"Invalid manifest for {request.name!r}: {e}") from e

    builder.build(request.output_path, selection.base_dir, selection.packaged, manifest)

    try:
        digest = hash_file(request.output_path)
    except OSError as e:
        raise ArchiveWriteError(
            f"Failed to hash package {request.output_path}: {e}",
            file_path=str(request.output_path)
        ) from e

    manifest.set_download_links(build_download_links(request.links, digest))
    reporter(f"Plugin file successfully created ({len(selection.packaged)} files, sha256 {digest})", "info")
    return manifest, digest, selection.packaged


def update_catalog(
        catalog_path: Path,
        manifest: Manifest,
        reporter: Optional[Reporter] = None
) -> Manifest:
    """Merge a manifest into the catalog file and rewrite it.

    Args:
        catalog_path: Catalog file (missing means empty)
        manifest: Freshly built manifest
        reporter: Progress reporter

    Returns:
        The catalog entry stored for the manifest's name

    Raises:
        CatalogParseError: If the existing catalog is malformed; the file is left untouched
        FileError: If the catalog cannot be written
    """
    reporter = reporter or _default_reporter()

    collection = ManifestCollection.load(catalog_path)
    existing = collection.try_get(manifest)
    known_platforms = set(existing.download_links) if existing is not None else set()

    stored = collection.merge(manifest)

    if existing is None:
        reporter(f"Added '{manifest.name}' to catalog {catalog_path}", "info")
    else:
        added = [p.value for p in stored.download_links if p not in known_platforms]
        if added:
            reporter(f"Added {', '.join(added)} links to '{stored.name}' in catalog", "info")
        else:
            reporter(f"Catalog entry '{stored.name}' already has every platform link", "info")

    try:
        collection.save(catalog_path)
    except OSError as e:
        raise FileError(f"Failed to write catalog {catalog_path}: {e}", file_path=str(catalog_path)) from e

    return stored


def sign_catalog(
        catalog_path: Path,
        settings: PackagerSettings,
        reporter: Optional[Reporter] = None
) -> Optional[Path]:
    """Sign the catalog with the key staged in the environment.

    Missing key material or passphrase disables signing without an error.

    Returns:
        Path of the signature file, or None if the catalog was not signed

    Raises:
        SigningError: If the key cannot be used or the file cannot be signed
    """
    reporter = reporter or _default_reporter()
    key_material, passphrase = load_secrets_from_env(
        settings.key_env, settings.passphrase_env, purge=settings.purge_env
    )
    try:
        armored = sign_file(catalog_path, key_material, passphrase, chunk_size=settings.chunk_size)
    finally:
        wipe(key_material)
        wipe(passphrase)

    if armored is None:
        reporter(
            f"Signing requested but {settings.key_env} or {settings.passphrase_env} is not set; catalog not signed",
            "warning"
        )
        return None

    path = signature_path(catalog_path)
    reporter(f"Catalog signed: {path}", "info")
    return path


def package_plugin(
        request: PackageRequest,
        settings: Optional[PackagerSettings] = None,
        reporter: Optional[Reporter] = None,
        registry: Optional[ReaderRegistry] = None,
        builder: Optional[ArchiveBuilder] = None,
) -> PackageResult:
    """Package a plugin and record it in the release catalog.

    Args:
        request: Packaging inputs
        settings: Packager settings (defaults when None)
        reporter: Progress reporter
        registry: Artifact readers
        builder: Archive builder

    Returns:
        The result of the run

    Raises:
        PackagerError: Only in strict mode, the failure of the first failing stage
    """
    settings = settings or PackagerSettings.defaults()
    reporter = reporter or _default_reporter()
    strict = request.strict if request.strict is not None else settings.strict

    catalog_path = request.output_path.parent / settings.catalog_file
    result = PackageResult(archive_path=request.output_path, catalog_path=catalog_path)

    try:
        manifest, digest, packaged = build_package(
            request, settings, reporter, registry=registry, builder=builder, catalog_path=catalog_path
        )
    except PackagerError as e:
        reporter(f"Packaging failed: {e}", "error")
        result.errors.append(e)
        if strict:
            raise
        return result

    result.manifest = manifest
    result.digest = digest
    result.packaged_files = packaged
    result.archive_built = True

    try:
        update_catalog(catalog_path, manifest, reporter)
        result.catalog_updated = True
    except PackagerError as e:
        reporter(f"Catalog update failed, the package {request.output_path} was kept: {e}", "error")
        result.errors.append(e)
        if strict:
            raise
        return result

    if request.sign:
        try:
            result.signature_path = sign_catalog(catalog_path, settings, reporter)
        except SigningError as e:
            reporter(f"Catalog not signed: {e}", "warning")
            result.warnings.append(str(e))
            if strict:
                raise
        if result.signature_path is None and not result.warnings:
            result.warnings.append("catalog not signed")

    return result
