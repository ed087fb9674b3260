"""Command-line interface for the DSRemapper plugin packager.

This module provides the ``package`` command that builds a plugin archive
and updates the release catalog, plus ``inspect`` and ``verify`` helpers
for the produced files.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pydantic

from dsrpackager.__version__ import __version__
from dsrpackager.core.config_manager import ConfigManager
from dsrpackager.core.logging_manager import LoggingManager
from dsrpackager.packaging.package import DEFAULT_EXTENSIONS, DEFAULT_IGNORE, list_entries, read_embedded_manifest
from dsrpackager.packaging.signing import signature_path, verify_file
from dsrpackager.packaging.tools import PackageRequest, package_plugin
from dsrpackager.utils.exceptions import ConfigurationError, FileError


def parse_links(values: Optional[List[str]]) -> Dict[str, str]:
    """Parse ``PLATFORM=URL`` pairs.

    Raises:
        ValueError: If a value has no ``=`` or an empty side
    """
    links: Dict[str, str] = {}
    for value in values or []:
        platform, sep, url = value.partition("=")
        if not sep or not platform.strip() or not url.strip():
            raise ValueError(f"Invalid link '{value}', expected PLATFORM=URL")
        links[platform.strip()] = url.strip()
    return links


def _print_manifest(manifest) -> None:
    print(f"  Name: {manifest.name}")
    print(f"  Version: {manifest.version}")
    print(f"  Core Version: {manifest.core_version or '-'}")
    print(f"  Framework Version: {manifest.framework_version or '-'}")
    if manifest.description:
        print(f"  Description: {manifest.description}")
    for platform, link in manifest.download_links.items():
        print(f"  Link ({platform.value}): {link.url} [{link.hash}]")


def package_command(args: argparse.Namespace) -> int:
    """Handle the package command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        config_manager = ConfigManager(config_path=args.config)
        config_manager.initialize()
        if args.strict:
            config_manager.set("packaging.strict", True)
        settings = config_manager.settings()
        logging_manager = LoggingManager(config_manager)
        logging_manager.initialize()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        try:
            request = PackageRequest(
                name=args.name,
                plugin_path=Path(args.plugin),
                output_path=Path(args.output),
                description=args.description or "",
                links=parse_links(args.link),
                overwrite=args.override,
                sign=args.sign,
                extensions=args.extensions,
                ignore=args.ignore,
            )
        except (pydantic.ValidationError, ValueError) as e:
            print(f"Invalid arguments: {e}", file=sys.stderr)
            return 1

        result = package_plugin(request, settings, reporter=logging_manager.get_reporter("dsrpackager"))

        if result.archive_built:
            print(f"Package created: {result.archive_path}")
            print(f"  SHA256: {result.digest}")
        if result.catalog_updated:
            print(f"Catalog updated: {result.catalog_path}")
        if result.signed:
            print(f"Catalog signature: {result.signature_path}")
        for warning in result.warnings:
            print(f"Warning: {warning}", file=sys.stderr)
        for error in result.errors:
            print(f"Error ({error.kind}): {error}", file=sys.stderr)

        return 0 if result.success else 1
    finally:
        logging_manager.shutdown()


def inspect_command(args: argparse.Namespace) -> int:
    """Handle the inspect command."""
    archive_path = Path(args.archive)
    try:
        manifest = read_embedded_manifest(archive_path)
        entries = list_entries(archive_path)
    except FileError as e:
        print(f"Error inspecting package: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(manifest.to_json())
        return 0

    print(f"Package: {archive_path}")
    _print_manifest(manifest)
    print("\nFiles:")
    for entry in entries:
        print(f"  - {entry}")
    return 0


def verify_command(args: argparse.Namespace) -> int:
    """Handle the verify command.

    Args:
        args: Command-line arguments

    Returns:
        Exit code (0 if the signature is valid, 1 otherwise)
    """
    catalog_path = Path(args.catalog)
    sig_path = Path(args.signature) if args.signature else signature_path(catalog_path)
    key_path = Path(args.key)

    for path, what in ((catalog_path, "Catalog"), (sig_path, "Signature"), (key_path, "Public key")):
        if not path.is_file():
            print(f"{what} not found: {path}", file=sys.stderr)
            return 1

    try:
        is_valid = verify_file(catalog_path, sig_path, key_path.read_bytes())
    except (ValueError, OSError) as e:
        print(f"Error verifying catalog: {e}", file=sys.stderr)
        return 1

    if is_valid:
        print(f"Catalog signature is valid: {catalog_path}")
        return 0

    print(f"Catalog signature verification failed: {catalog_path}", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dsrpackager",
        description="DSRemapper utility for packaging the plugins",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Package command
    package_parser = subparsers.add_parser("package", help="Package a plugin and update the release catalog")
    package_parser.add_argument("--name", "-n", required=True, help="The name of the plugin")
    package_parser.add_argument("--plugin", "-p", required=True, help="The plugin's main file")
    package_parser.add_argument("--output", "-o", default="./plugin.zip", help="The output zip file (default: %(default)s)")
    package_parser.add_argument(
        "--ignore", "-i", nargs="*", default=None,
        help=f"Files to ignore, relative to the plugin folder (default: {' '.join(DEFAULT_IGNORE)})"
    )
    package_parser.add_argument(
        "--extensions", "-e", nargs="*", default=None,
        help=f"Extensions of files to package (default: {' '.join(DEFAULT_EXTENSIONS)})"
    )
    package_parser.add_argument(
        "--override", "-w", "-y", action="store_true",
        help="Overwrite an existing file at the output path"
    )
    package_parser.add_argument(
        "--link", action="append", default=None, metavar="PLATFORM=URL",
        help="Download URL of the package for a platform (repeatable)"
    )
    package_parser.add_argument("--description", "-d", default="", help="Plugin description")
    package_parser.add_argument("--sign", action="store_true", help="Sign the catalog with the key from the environment")
    package_parser.add_argument("--strict", action="store_true", help="Abort on the first failing stage")
    package_parser.add_argument("--config", default=None, help="Path to configuration file")

    # Inspect command
    inspect_parser = subparsers.add_parser("inspect", help="Show the manifest embedded in a package")
    inspect_parser.add_argument("archive", help="Plugin package")
    inspect_parser.add_argument("--json", action="store_true", help="Print the raw manifest JSON")

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify a catalog signature")
    verify_parser.add_argument("catalog", help="Catalog file")
    verify_parser.add_argument("--key", required=True, help="Path to the signer's PEM public key")
    verify_parser.add_argument("--signature", default=None, help="Signature file (defaults to CATALOG.asc)")

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    args = parser.parse_args(args)

    if args.command == "package":
        return package_command(args)
    elif args.command == "inspect":
        return inspect_command(args)
    elif args.command == "verify":
        return verify_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
