from __future__ import annotations

import enum
import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import pydantic
from pydantic import ConfigDict, Field, field_validator

from dsrpackager.packaging.version import Version


class Platform(str, enum.Enum):
    WINDOWS = 'windows'
    LINUX = 'linux'
    MACOS = 'macos'
    FREEBSD = 'freebsd'
    ALL = 'all'

    @classmethod
    def parse(cls, text: Union[str, Platform]) -> Platform:
        """Parse a platform name, accepting common aliases."""
        if isinstance(text, Platform):
            return text
        aliases = {
            'win': cls.WINDOWS,
            'win32': cls.WINDOWS,
            'osx': cls.MACOS,
            'mac': cls.MACOS,
            'darwin': cls.MACOS,
            'any': cls.ALL,
        }
        key = text.strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            valid = ', '.join(p.value for p in cls)
            raise ValueError(f"Unknown platform '{text}' (expected one of: {valid})")


class DownloadLink(pydantic.BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    hash: str


class Manifest(pydantic.BaseModel):
    """Metadata record of one packaged plugin release.

    Everything but ``download_links`` is fixed at construction. Two
    manifests are equal when their names match case-insensitively, which
    is what lets a new release find its catalog entry.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    version: Version
    core_version: Optional[Version] = None
    framework_version: Optional[Version] = None
    description: str = ''
    download_links: Dict[Platform, DownloadLink] = Field(default_factory=dict)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Manifest name must not be empty')
        return v

    @field_validator('version', 'core_version', 'framework_version', mode='before')
    @classmethod
    def validate_version(cls, v: Any) -> Optional[Version]:
        try:
            return Version.coerce(v)
        except TypeError:
            raise ValueError(f'Invalid version: {v!r}')

    @field_validator('description', mode='before')
    @classmethod
    def validate_description(cls, v: Any) -> str:
        return '' if v is None else v

    @property
    def key(self) -> str:
        return self.name.casefold()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def set_download_links(self, links: Mapping[Platform, Union[DownloadLink, Tuple[str, str]]]) -> None:
        """Replace the whole set of download links."""
        new_links = {Platform.parse(p): self._to_link(link) for p, link in links.items()}
        self.download_links.clear()
        self.download_links.update(new_links)

    def set_platform_link(self, platform: Union[Platform, str], url: str, hash: str) -> None:
        """Insert or overwrite the link of a single platform."""
        self.download_links[Platform.parse(platform)] = DownloadLink(url=url, hash=hash)

    def link_for(self, platform: Union[Platform, str]) -> Optional[DownloadLink]:
        """Get the link a consumer on ``platform`` should use.

        A platform-specific entry wins over the ``all`` entry.
        """
        platform = Platform.parse(platform)
        return self.download_links.get(platform) or self.download_links.get(Platform.ALL)

    def copy_links(self) -> Dict[Platform, DownloadLink]:
        return dict(self.download_links)

    @staticmethod
    def _to_link(link: Union[DownloadLink, Tuple[str, str]]) -> DownloadLink:
        if isinstance(link, DownloadLink):
            return link
        url, hash = link
        return DownloadLink(url=url, hash=hash)

    def to_dict(self) -> Dict[str, Any]:
        # Key order here is the on-disk order; links follow Platform declaration order.
        return {
            'name': self.name,
            'version': str(self.version),
            'core_version': str(self.core_version) if self.core_version is not None else None,
            'framework_version': str(self.framework_version) if self.framework_version is not None else None,
            'description': self.description,
            'download_links': {
                platform.value: {'url': link.url, 'hash': link.hash}
                for platform in Platform
                if (link := self.download_links.get(platform)) is not None
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Manifest:
        """Build a manifest from its dictionary form.

        Raises:
            ValueError: If the data is not a valid manifest
        """
        if not isinstance(data, Mapping):
            raise ValueError(f'Manifest must be an object, got {type(data).__name__}')
        data = dict(data)
        links = data.get('download_links') or {}
        if not isinstance(links, Mapping):
            raise ValueError('download_links must be an object')
        try:
            data['download_links'] = {Platform.parse(p): link for p, link in links.items()}
            return cls(**data)
        except pydantic.ValidationError as e:
            raise ValueError(f'Invalid manifest data: {e}')

    @classmethod
    def from_json(cls, text: str) -> Manifest:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f'Invalid manifest file: {e}')
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, path: Union[str, Path]) -> Manifest:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f'Manifest file not found: {path}')
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_json(f.read())
