"""Filesystem variants known to the application, keyed by type name."""

from notebookfs.errors import ConfigurationError
from notebookfs.s3 import S3FileSystem

import logging


logger = logging.getLogger(__name__)

FILESYSTEM_TYPES = {
    "s3": S3FileSystem,
}


def _filesystem_class(type_name):
    try:
        return FILESYSTEM_TYPES[type_name]
    except KeyError:
        raise ConfigurationError(
            f"unknown filesystem type {type_name!r}, expected one of: "
            + ", ".join(sorted(FILESYSTEM_TYPES))
        ) from None


def filesystem_from_config(type_name, config, **kwargs):
    """Build a filesystem of the given type from user configuration."""
    logger.debug("Creating %s filesystem from config", type_name)
    return _filesystem_class(type_name).from_config(config, **kwargs)


def load_filesystem(type_name, fields, **kwargs):
    """Rebuild a filesystem of the given type from its dumped fields."""
    return _filesystem_class(type_name).load(fields, **kwargs)
