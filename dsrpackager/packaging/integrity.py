"""Integrity hashes for packaged archives."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, Mapping, Union

from dsrpackager.packaging.manifest import DownloadLink, Platform

CHUNK_SIZE = 64 * 1024


def hash_file(path: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> str:
    """Calculate a SHA-256 hash of a file.

    Args:
        path: Path to the file
        chunk_size: Read size

    Returns:
        Lower-case hex digest of the file contents
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def build_download_links(
        urls: Mapping[Union[Platform, str], str],
        digest: str
) -> Dict[Platform, DownloadLink]:
    """Pair every advertised download location with the archive hash.

    One archive may be published at several locations; all of them carry
    the same digest.
    """
    return {Platform.parse(p): DownloadLink(url=url, hash=digest) for p, url in urls.items()}
