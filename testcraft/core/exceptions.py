"""
Scanner-wide exception hierarchy.

Every component boundary (git, parser, database) translates low-level
failures into one of these kinds, so callers never have to import
GitPython, tree-sitter or SQLAlchemy exception types to react to them.

Usage:
    from testcraft.core.exceptions import HubIOError, ConnectivityError

    raise HubIOError("Hub path is not writable", path="/srv/hub")
    raise ConnectivityError("git clone timed out", repository="billing")
"""


class TestCraftError(Exception):
    """Base class for all domain errors raised by the scanner.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured context. Logged, and stored on the
                 scan session error log where applicable.
    """

    __test__ = False  # keep pytest from collecting this as a test class

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(TestCraftError):
    """Raised when required configuration is missing or malformed.

    Raised before any I/O-heavy work starts; a run never begins with an
    invalid configuration.
    """


class HubIOError(TestCraftError):
    """Raised when the hub directory or a checkout cannot be read or written."""

    def __init__(self, message: str, path: str | None = None, details: dict | None = None) -> None:
        self.path = path
        merged = dict(details or {})
        if path is not None:
            merged.setdefault("path", path)
        super().__init__(message, details=merged)


class ConnectivityError(TestCraftError):
    """Raised when a remote (git server, database) cannot be reached.

    Args:
        message: What failed.
        repository: Optional repository name the failure belongs to.
        attempts: How many attempts were made before giving up.
    """

    def __init__(
        self,
        message: str,
        repository: str | None = None,
        attempts: int | None = None,
    ) -> None:
        self.repository = repository
        self.attempts = attempts
        details = {}
        if repository is not None:
            details["repository"] = repository
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, details=details)


class ParseError(TestCraftError):
    """Raised when a source file cannot be parsed. Always file-scoped."""

    def __init__(self, message: str, file_path: str | None = None) -> None:
        self.file_path = file_path
        super().__init__(message, details={"file_path": file_path} if file_path else None)


class ConstraintError(TestCraftError):
    """Raised when a row violates a uniqueness or integrity constraint.

    Args:
        table: Table the row was destined for.
        key: The natural key that conflicted, when known.
    """

    def __init__(self, message: str, table: str | None = None, key: tuple | None = None) -> None:
        self.table = table
        self.key = key
        details = {}
        if table is not None:
            details["table"] = table
        if key is not None:
            details["key"] = list(key)
        super().__init__(message, details=details)


class PersistenceError(TestCraftError):
    """Raised when a scan summary could not be written. The transaction was rolled back."""
