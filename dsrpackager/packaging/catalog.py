"""Release catalog: the persisted collection of plugin manifests.

The catalog is a JSON array of manifests stored next to the packaged
archives. Entries are unique by case-insensitive name and keep their
insertion order, so the file diffs cleanly under version control.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from dsrpackager.packaging.manifest import Manifest, Platform
from dsrpackager.utils.exceptions import CatalogParseError, DuplicateKeyError


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def merge_links(existing: Manifest, incoming: Manifest) -> List[Platform]:
    """Copy the links of platforms ``existing`` does not have yet.

    Args:
        existing: Catalog entry, updated in place
        incoming: Freshly built manifest

    Returns:
        Platforms that were added to ``existing``
    """
    added = [p for p in incoming.download_links if p not in existing.download_links]
    for platform in added:
        link = incoming.download_links[platform]
        existing.set_platform_link(platform, link.url, link.hash)
    return added


class ManifestCollection:
    """Ordered set of manifests keyed by case-insensitive name."""

    def __init__(self, manifests: Optional[List[Manifest]] = None) -> None:
        self._entries: Dict[str, Manifest] = {}
        for manifest in manifests or []:
            self.add(manifest)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Manifest]:
        return iter(list(self._entries.values()))

    def __contains__(self, manifest: object) -> bool:
        return isinstance(manifest, Manifest) and manifest.key in self._entries

    def names(self) -> List[str]:
        return [m.name for m in self._entries.values()]

    def try_get(self, manifest: Manifest) -> Optional[Manifest]:
        """Get the stored entry with the same name as ``manifest``."""
        return self._entries.get(manifest.key)

    def add(self, manifest: Manifest) -> None:
        """Append a manifest.

        Raises:
            DuplicateKeyError: If an entry with the same name exists
        """
        if manifest.key in self._entries:
            raise DuplicateKeyError("Manifest already in catalog", name=manifest.name)
        self._entries[manifest.key] = manifest

    def remove(self, manifest: Manifest) -> bool:
        return self._entries.pop(manifest.key, None) is not None

    def merge(self, incoming: Manifest) -> Manifest:
        """Merge a freshly built manifest into the collection.

        An unknown name is appended as is. For a known name only the
        download links of platforms the stored entry lacks are added; every
        other field of the stored entry is kept, and the entry moves to the
        end of the collection. Merging the same manifest again changes
        nothing.

        Args:
            incoming: Manifest to merge

        Returns:
            The entry now stored for this name
        """
        existing = self.try_get(incoming)
        if existing is None:
            self.add(incoming)
            return incoming

        merge_links(existing, incoming)
        self.remove(existing)
        self.add(existing)
        return existing

    def to_list(self) -> List[dict]:
        return [m.to_dict() for m in self._entries.values()]

    def serialize(self) -> str:
        return json.dumps(self.to_list(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def parse(cls, text: str, source: Optional[str] = None) -> ManifestCollection:
        """Parse catalog text.

        Accepts an array of manifests, a single manifest object (such as the
        ``manifest.json`` embedded in a package) or blank text.

        Args:
            text: Catalog contents
            source: Origin of the text, used in error messages

        Returns:
            Parsed collection

        Raises:
            CatalogParseError: If the text is not a valid catalog
        """
        if not text.strip():
            return cls()

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CatalogParseError(f"Invalid catalog JSON: {e}", file_path=source) from e

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise CatalogParseError(
                f"Catalog must be a list of manifests, got {type(data).__name__}",
                file_path=source
            )

        collection = cls()
        for index, item in enumerate(data):
            try:
                manifest = Manifest.from_dict(item)
            except ValueError as e:
                raise CatalogParseError(f"Invalid catalog entry #{index}: {e}", file_path=source) from e
            try:
                collection.add(manifest)
            except DuplicateKeyError as e:
                raise CatalogParseError(
                    f"Duplicate catalog entry #{index}: {manifest.name}",
                    file_path=source
                ) from e
        return collection

    @classmethod
    def load(cls, path: Union[str, Path]) -> ManifestCollection:
        """Load a catalog file; a missing file is an empty catalog.

        Raises:
            CatalogParseError: If the file cannot be read or parsed
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise CatalogParseError(f"Cannot read catalog {path}: {e}", file_path=str(path)) from e
        return cls.parse(text, source=str(path))

    def save(self, path: Union[str, Path]) -> None:
        """Overwrite the catalog file atomically.

        An existing catalog keeps its permission bits; a new one gets the
        default mode for the current umask.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        text = self.serialize()
        with tempfile.NamedTemporaryFile(
                mode="w", encoding="utf-8", newline="\n", delete=False, dir=path.parent, suffix=".tmp"
        ) as tmp:
            tmp_name = tmp.name
            try:
                tmp.write(text)
                tmp.flush()
                if path.exists():
                    shutil.copymode(path, tmp_name)
                else:
                    os.chmod(tmp_name, _default_file_mode())
            except OSError:
                tmp.close()
                os.unlink(tmp_name)
                raise

        try:
            os.replace(tmp_name, path)
        except OSError:
            os.unlink(tmp_name)
            raise
