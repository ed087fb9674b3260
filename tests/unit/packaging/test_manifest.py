"""Unit tests for the plugin manifest."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dsrpackager.packaging.manifest import DownloadLink, Manifest, Platform
from dsrpackager.packaging.version import Version


@pytest.fixture
def manifest() -> Manifest:
    return Manifest(
        name="Foo",
        version="1.0.0",
        core_version="1.2.0",
        framework_version=Version.of(0, 9),
        description="Remaps Foo controllers",
    )


def test_construction_coerces_versions(manifest: Manifest) -> None:
    assert manifest.version == Version.of(1, 0, 0)
    assert manifest.core_version == Version.of(1, 2, 0)
    assert manifest.framework_version == Version.of(0, 9)
    assert manifest.download_links == {}


def test_optional_fields() -> None:
    m = Manifest(name="  Bar ", version="2.0", description=None)
    assert m.name == "Bar"
    assert m.core_version is None
    assert m.framework_version is None
    assert m.description == ""


@pytest.mark.parametrize("kwargs", [
    {"name": "", "version": "1.0"},
    {"name": "   ", "version": "1.0"},
    {"name": "Foo", "version": "one"},
    {"name": "Foo", "version": 3},
    {"name": "Foo", "version": "1.0", "core_version": "latest"},
])
def test_invalid_manifest(kwargs) -> None:
    with pytest.raises(ValueError):
        Manifest(**kwargs)


def test_fields_are_immutable(manifest: Manifest) -> None:
    with pytest.raises(Exception):
        manifest.name = "Other"


class TestEquality:
    """Tests for name-based identity."""

    def test_equal_ignoring_case(self) -> None:
        a = Manifest(name="Foo", version="1.0")
        b = Manifest(name="FOO", version="2.0", description="different")
        assert a == b
        assert hash(a) == hash(b)
        assert len({a, b}) == 1

    def test_different_names(self) -> None:
        assert Manifest(name="Foo", version="1.0") != Manifest(name="Bar", version="1.0")

    def test_not_equal_to_other_types(self, manifest: Manifest) -> None:
        assert manifest != "Foo"


class TestDownloadLinks:
    """Tests for the mutable download link set."""

    def test_set_download_links_replaces(self, manifest: Manifest) -> None:
        manifest.set_platform_link(Platform.LINUX, "https://old/linux.zip", "aa")

        manifest.set_download_links({
            Platform.WINDOWS: DownloadLink(url="https://x/win.zip", hash="bb"),
            "macos": ("https://x/mac.zip", "cc"),
        })

        assert set(manifest.download_links) == {Platform.WINDOWS, Platform.MACOS}
        assert manifest.download_links[Platform.MACOS] == DownloadLink(url="https://x/mac.zip", hash="cc")

    def test_set_platform_link_overwrites_single(self, manifest: Manifest) -> None:
        manifest.set_platform_link("windows", "https://a", "1")
        manifest.set_platform_link("linux", "https://b", "2")
        manifest.set_platform_link("WIN", "https://c", "3")

        assert manifest.download_links[Platform.WINDOWS].url == "https://c"
        assert manifest.download_links[Platform.LINUX].url == "https://b"

    def test_link_for_prefers_specific(self, manifest: Manifest) -> None:
        manifest.set_platform_link(Platform.ALL, "https://any", "0")
        manifest.set_platform_link(Platform.LINUX, "https://linux", "1")

        assert manifest.link_for("linux").url == "https://linux"
        assert manifest.link_for(Platform.WINDOWS).url == "https://any"

    def test_link_for_missing(self, manifest: Manifest) -> None:
        assert manifest.link_for(Platform.FREEBSD) is None

    def test_copy_links_is_a_snapshot(self, manifest: Manifest) -> None:
        manifest.set_platform_link(Platform.LINUX, "https://linux", "1")
        snapshot = manifest.copy_links()
        manifest.set_platform_link(Platform.WINDOWS, "https://win", "2")
        assert list(snapshot) == [Platform.LINUX]


def test_platform_parse() -> None:
    assert Platform.parse("Windows") is Platform.WINDOWS
    assert Platform.parse("darwin") is Platform.MACOS
    assert Platform.parse("any") is Platform.ALL
    with pytest.raises(ValueError, match="Unknown platform"):
        Platform.parse("amiga")


class TestSerialization:
    """Tests for the JSON form of a manifest."""

    def test_to_dict_layout(self, manifest: Manifest) -> None:
        manifest.set_platform_link(Platform.LINUX, "https://linux", "11")
        manifest.set_platform_link(Platform.WINDOWS, "https://win", "22")

        data = manifest.to_dict()

        assert list(data) == [
            "name", "version", "core_version", "framework_version", "description", "download_links"
        ]
        assert data["version"] == "1.0.0"
        assert data["framework_version"] == "0.9"
        # Links follow platform declaration order, not insertion order
        assert list(data["download_links"]) == ["windows", "linux"]
        assert data["download_links"]["linux"] == {"url": "https://linux", "hash": "11"}

    def test_absent_versions_are_null(self) -> None:
        data = Manifest(name="Bar", version="1.0").to_dict()
        assert data["core_version"] is None
        assert data["framework_version"] is None

    def test_round_trip_is_stable(self, manifest: Manifest) -> None:
        manifest.set_platform_link(Platform.WINDOWS, "https://win", "22")
        text = manifest.to_json()

        loaded = Manifest.from_json(text)

        assert loaded.to_json() == text
        assert loaded.download_links == manifest.download_links

    def test_from_dict_rejects_invalid(self) -> None:
        with pytest.raises(ValueError):
            Manifest.from_dict({"name": "Foo"})
        with pytest.raises(ValueError):
            Manifest.from_dict(["not", "an", "object"])
        with pytest.raises(ValueError):
            Manifest.from_dict({"name": "Foo", "version": "1.0", "download_links": {"amiga": {"url": "u", "hash": "h"}}})

    def test_from_json_rejects_bad_json(self) -> None:
        with pytest.raises(ValueError, match="Invalid manifest file"):
            Manifest.from_json("{")

    def test_non_ascii_description(self) -> None:
        m = Manifest(name="Mando", version="1.0", description="Configuración de mandos")
        assert "Configuración" in m.to_json()
        assert json.loads(m.to_json())["description"] == "Configuración de mandos"

    def test_save_and_load(self, tmp_path: Path, manifest: Manifest) -> None:
        path = tmp_path / "nested" / "manifest.json"
        manifest.save(path)

        loaded = Manifest.load(path)

        assert loaded == manifest
        assert loaded.core_version == manifest.core_version

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Manifest.load(tmp_path / "missing.json")
