"""Pytest configuration and fixtures for packager tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Iterable, Optional, Tuple

import pytest
import yaml
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from dsrpackager.core.config_manager import ConfigManager, PackagerSettings
from dsrpackager.packaging.readers import ArtifactInfo, ArtifactReference, ReaderRegistry
from dsrpackager.packaging.version import Version
from dsrpackager.utils.exceptions import ArtifactReadError

PASSPHRASE = b"correct horse battery staple"


class FakeModuleReader:
    """Reads the JSON stand-ins for compiled modules written by ``artifact_writer``."""

    def read(self, data: bytes) -> ArtifactInfo:
        try:
            doc = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ArtifactReadError(f"Not a module: {e}") from e
        return ArtifactInfo(
            name=doc.get("name"),
            version=Version.try_parse(doc.get("version")),
            references=[
                ArtifactReference(name, Version.try_parse(version))
                for name, version in doc.get("references", [])
            ],
        )


ArtifactWriter = Callable[..., Path]


@pytest.fixture
def fake_registry() -> ReaderRegistry:
    return ReaderRegistry({"dll": FakeModuleReader()})


@pytest.fixture
def artifact_writer() -> ArtifactWriter:
    """Write a fake module file and return its path."""

    def write(
            path: Path,
            name: Optional[str] = None,
            version: Optional[str] = None,
            references: Iterable[Tuple[str, Optional[str]]] = ()
    ) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        doc = {"name": name, "version": version, "references": [list(r) for r in references]}
        path.write_text(json.dumps(doc), encoding="utf-8")
        return path

    return write


@pytest.fixture
def plugin_build(tmp_path: Path, artifact_writer: ArtifactWriter) -> Path:
    """A plugin build output directory.

    Foo.dll is the plugin (2.0.1, references core 1.1.0 and framework 1.0.0),
    a.dll references core 1.2.0, DSRemapper.Core.dll is ignored by default
    and readme.txt has an extension that is not packaged.
    """
    build = tmp_path / "build"
    artifact_writer(
        build / "Foo.dll", name="Foo", version="2.0.1",
        references=[("DSRemapper.Core", "1.1.0"), ("DSRemapper.Framework", "1.0.0"), ("System.Runtime", "8.0.0")]
    )
    artifact_writer(build / "a.dll", name="a", version="0.1", references=[("DSRemapper.Core", "1.2.0")])
    artifact_writer(build / "DSRemapper.Core.dll", name="DSRemapper.Core", version="9.9.9")
    (build / "b.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    (build / "readme.txt").write_text("not packaged", encoding="utf-8")
    return build


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def settings() -> PackagerSettings:
    return PackagerSettings.defaults()


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_private_key: rsa.RSAPrivateKey) -> bytes:
    """Passphrase-protected PKCS#8 PEM of the RSA test key."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(PASSPHRASE),
    )


@pytest.fixture(scope="session")
def rsa_public_pem(rsa_private_key: rsa.RSAPrivateKey) -> bytes:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@pytest.fixture(scope="session")
def ec_private_pem() -> bytes:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.BestAvailableEncryption(PASSPHRASE),
    )


@pytest.fixture
def passphrase() -> bytes:
    return PASSPHRASE


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary configuration file for testing."""
    test_config = {
        "packaging": {"fallback_version": "0.9.0", "extensions": ["dll", "png"]},
        "signing": {"purge_env": False},
        "logging": {
            "level": "DEBUG",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "DEBUG"},
        },
    }
    config_file = tmp_path / "dsrpackager.yaml"
    with config_file.open("w", encoding="utf-8") as f:
        yaml.dump(test_config, f)
    return config_file


@pytest.fixture
def config_manager(temp_config_file: Path) -> ConfigManager:
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()
    return manager
