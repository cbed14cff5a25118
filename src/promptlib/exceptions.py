"""Custom exceptions for the prompt library."""

from pathlib import Path


class LibraryError(Exception):
    """Base class for library errors."""


class InvalidCategoryError(LibraryError):
    """Raised when a category is not one of the known category folders."""

    def __init__(self, category: str):
        """Initialize the error."""
        self.category = category
        super().__init__(f"Unknown category: {category!r}")


class IntentConfigError(LibraryError):
    """Raised when the external intent configuration cannot be used."""

    def __init__(self, message: str, config_path: Path):
        """Initialize the error."""
        self.config_path = config_path
        super().__init__(message)


class UnsafePathError(LibraryError):
    """Raised when a resolved save path falls outside the library root."""

    def __init__(self, path: Path, root: Path):
        """Initialize the error."""
        self.path = path
        self.root = root
        super().__init__(f"{path} is not inside {root}")


class EmptyWorkflowError(LibraryError):
    """Raised when starting a session on a workflow without steps."""


class ReadOnlyLibraryError(LibraryError):
    """Raised when a write is attempted on a read-only library."""
