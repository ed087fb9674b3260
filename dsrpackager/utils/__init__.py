"""Utility functions and classes for the packager."""

from dsrpackager.utils.exceptions import (
    AlreadyExistsError,
    ArchiveWriteError,
    ArtifactReadError,
    CatalogParseError,
    ConfigurationError,
    DuplicateKeyError,
    FileError,
    InvalidInputError,
    NoSigningKeyError,
    PackagerError,
    ScanError,
    SigningError,
)
