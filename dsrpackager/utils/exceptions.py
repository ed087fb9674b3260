from __future__ import annotations

from typing import Any, Optional


class PackagerError(Exception):
    """Base exception for all packager errors."""

    kind = "PackagerError"

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        self.details = kwargs.pop("details", {})
        self.details.update(kwargs)
        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.message}"


class ConfigurationError(PackagerError):
    """Exception raised for configuration-related errors."""

    kind = "ConfigurationError"

    def __init__(
            self, message: str, *args: Any, config_key: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a ConfigurationError.

        Args:
            message: A descriptive error message.
            *args: Ignored, kept for call-site compatibility.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)


class FileError(PackagerError):
    """Exception raised for errors tied to a single file."""

    def __init__(
            self, message: str, *args: Any, file_path: Optional[str] = None, **kwargs: Any
    ) -> None:
        """Initialize a FileError.

        Args:
            message: A descriptive error message.
            *args: Ignored, kept for call-site compatibility.
            file_path: The path of the file that caused the error.
            **kwargs: Additional error information.
        """
        details = kwargs.pop("details", {})
        if file_path:
            details["file_path"] = str(file_path)
        super().__init__(message, details=details, **kwargs)
        self.file_path = str(file_path) if file_path else None


class InvalidInputError(FileError):
    """A required input file or directory is missing."""

    kind = "InvalidInput"


class AlreadyExistsError(FileError):
    """The output archive exists and overwriting was not requested."""

    kind = "AlreadyExists"


class ArtifactReadError(FileError):
    """Raised by artifact readers when bytes are not a readable module."""

    kind = "ArtifactReadError"


class ScanError(FileError):
    """An artifact could not be opened to extract its references."""

    kind = "ScanFailure"


class ArchiveWriteError(FileError):
    """I/O error while writing the package archive."""

    kind = "ArchiveWriteFailure"


class CatalogParseError(FileError):
    """The persisted catalog is malformed."""

    kind = "ParseError"


class DuplicateKeyError(PackagerError):
    """A manifest with the same name already exists in the collection."""

    kind = "DuplicateKey"

    def __init__(self, message: str, *args: Any, name: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if name:
            details["name"] = name
        super().__init__(message, details=details, **kwargs)
        self.name = name

    def __str__(self) -> str:
        """String representation."""
        if self.name:
            return f"{self.message} (Name: {self.name})"
        return super().__str__()


class SigningError(PackagerError):
    """Signing was requested but could not be completed."""

    kind = "SigningFailure"


class NoSigningKeyError(SigningError):
    """The supplied key material holds no usable (RSA) signing key."""

    kind = "NoSigningKey"
