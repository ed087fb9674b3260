"""Plugin archive creation.

This module provides the file selection policy used to decide which build
outputs go into a plugin package, and the builder that writes the package
archive with its embedded manifest.
"""

from __future__ import annotations

import os
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Union

from dsrpackager.packaging.manifest import Manifest
from dsrpackager.utils.exceptions import ArchiveWriteError, FileError

MANIFEST_FILE_NAME = "manifest.json"

DEFAULT_EXTENSIONS = ["dll", "png", "ndll", "so", "dylib"]
DEFAULT_IGNORE = [
    "DSRemapper.Core.dll",
    "DSRemapper.Framework.dll",
    "FireLibs.Logging.dll",
    MANIFEST_FILE_NAME,
]


@dataclass
class FileSelection:
    """Outcome of the file selection policy.

    Attributes:
        base_dir: Directory the selection was made in
        packaged: Files to package, in packaging order
        ignored: Files that were found but left out
    """

    base_dir: Path
    packaged: List[Path] = field(default_factory=list)
    ignored: List[Path] = field(default_factory=list)

    def relative(self, path: Path) -> str:
        return path.relative_to(self.base_dir).as_posix()


def select_files(
        base_dir: Union[str, Path],
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        ignore: Iterable[str] = DEFAULT_IGNORE,
        exclude: Iterable[Union[str, Path]] = ()
) -> FileSelection:
    """Select the files of a build output directory to package.

    A file is packaged when its extension is in the allow-list and its path
    relative to ``base_dir`` is not in the ignore list. The walk is sorted so
    the same directory always yields the same order.

    Args:
        base_dir: Build output directory
        extensions: Allowed extensions, without the dot
        ignore: Paths relative to ``base_dir`` to leave out
        exclude: Absolute paths to leave out (e.g. the output archive)

    Returns:
        The selection

    Raises:
        FileError: If ``base_dir`` is not a directory
    """
    base_dir = Path(base_dir).resolve()
    if not base_dir.is_dir():
        raise FileError(f"Packaging directory not found: {base_dir}", file_path=str(base_dir))

    allowed = {e.lower().lstrip(".") for e in extensions}
    ignored_paths = {(base_dir / i).resolve() for i in ignore}
    ignored_paths.update(Path(p).resolve() for p in exclude)

    selection = FileSelection(base_dir=base_dir)
    for root, dirs, files in os.walk(base_dir):
        dirs.sort()
        root_path = Path(root)
        for name in sorted(files):
            file_path = root_path / name
            if not file_path.is_file():
                continue
            extension = file_path.suffix.lower().lstrip(".")
            if extension and extension in allowed and file_path.resolve() not in ignored_paths:
                selection.packaged.append(file_path)
            else:
                selection.ignored.append(file_path)

    return selection


class ArchiveBuilder:
    """Writes plugin archives.

    The archive holds each packaged file under its path relative to the
    build directory, followed by a ``manifest.json`` entry with the manifest
    as it was when the build ran.
    """

    def __init__(self, compression: int = zipfile.ZIP_DEFLATED) -> None:
        self.compression = compression

    def build(
            self,
            output_path: Union[str, Path],
            base_dir: Union[str, Path],
            files: Sequence[Union[str, Path]],
            manifest: Manifest
    ) -> Path:
        """Create the archive.

        An existing file at ``output_path`` is replaced; callers decide
        beforehand whether that is allowed. On failure the partially
        written archive stays on disk.

        Args:
            output_path: Archive to create
            base_dir: Directory the entry names are relative to
            files: Files to store, in order
            manifest: Manifest to embed

        Returns:
            Path of the archive

        Raises:
            ArchiveWriteError: If a source file cannot be read or the archive cannot be written
        """
        output_path = Path(output_path)
        base_dir = Path(base_dir).resolve()
        manifest_json = manifest.to_json()

        try:
            with zipfile.ZipFile(output_path, "w", self.compression) as zf:
                for file in files:
                    file_path = Path(file).resolve()
                    try:
                        arcname = file_path.relative_to(base_dir).as_posix()
                    except ValueError:
                        raise ArchiveWriteError(
                            f"File is outside the packaging directory: {file_path}",
                            file_path=str(file_path)
                        )
                    zf.write(file_path, arcname)
                zf.writestr(MANIFEST_FILE_NAME, manifest_json)
        except ArchiveWriteError:
            raise
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as e:
            raise ArchiveWriteError(f"Failed to create package {output_path}: {e}", file_path=str(output_path)) from e

        return output_path


def read_embedded_manifest(archive_path: Union[str, Path]) -> Manifest:
    """Read the manifest stored inside a plugin archive.

    Raises:
        FileError: If the archive or its manifest entry cannot be read
    """
    archive_path = Path(archive_path)
    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            text = zf.read(MANIFEST_FILE_NAME).decode("utf-8")
    except KeyError:
        raise FileError(f"No {MANIFEST_FILE_NAME} in package: {archive_path}", file_path=str(archive_path))
    except (OSError, zipfile.BadZipFile) as e:
        raise FileError(f"Failed to open package {archive_path}: {e}", file_path=str(archive_path)) from e

    try:
        return Manifest.from_json(text)
    except ValueError as e:
        raise FileError(f"Invalid embedded manifest in {archive_path}: {e}", file_path=str(archive_path)) from e


def list_entries(archive_path: Union[str, Path]) -> List[str]:
    with zipfile.ZipFile(archive_path, "r") as zf:
        return zf.namelist()
