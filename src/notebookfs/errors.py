class FileSystemError(Exception):
    """Base class for all filesystem errors."""


class NotFoundError(FileSystemError, FileNotFoundError):
    """The key, or every key under a directory prefix, is absent."""


class AlreadyExistsError(FileSystemError, FileExistsError):
    """The destination of a rename already exists."""


class InvalidPathError(FileSystemError, ValueError):
    """A path does not have the kind (directory or regular file) expected.

    This signals caller misuse and is raised before any request is made.
    """


class S3OperationError(FileSystemError):
    """Wraps boto3 ClientError to avoid leaking AWS infrastructure details."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class ConfigurationError(FileSystemError, ValueError):
    """Filesystem configuration is missing keys or holds invalid values."""
