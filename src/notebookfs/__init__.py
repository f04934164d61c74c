from notebookfs.errors import AlreadyExistsError
from notebookfs.errors import ConfigurationError
from notebookfs.errors import FileSystemError
from notebookfs.errors import InvalidPathError
from notebookfs.errors import NotFoundError
from notebookfs.errors import S3OperationError
from notebookfs.registry import filesystem_from_config
from notebookfs.registry import load_filesystem
from notebookfs.s3 import S3FileSystem


__all__ = [
    "AlreadyExistsError",
    "ConfigurationError",
    "FileSystemError",
    "InvalidPathError",
    "NotFoundError",
    "S3FileSystem",
    "S3OperationError",
    "filesystem_from_config",
    "load_filesystem",
]
