"""Filesystem backed by an S3 bucket.

S3 has a flat key namespace. Directories are emulated with key
prefixes and zero-length placeholder objects whose key ends in "/".
"""

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait
from dataclasses import dataclass
from dataclasses import field
from notebookfs import paths
from notebookfs import streaming
from notebookfs.errors import AlreadyExistsError
from notebookfs.errors import ConfigurationError
from notebookfs.errors import NotFoundError
from notebookfs.errors import S3OperationError
from notebookfs.interfaces import IFileSystem
from notebookfs.s3client import S3Client
from urllib.parse import urlsplit
from zope.interface import implementer

import base64
import hashlib
import logging


logger = logging.getLogger(__name__)

REQUIRED_CONFIG_KEYS = ("bucket_url", "access_key_id", "secret_access_key")

DEFAULT_COPY_CONCURRENCY = 16


def region_from_url(url):
    """Infer the region from a host of the form *.[region].[rootdomain].com."""
    host = urlsplit(url).hostname or ""
    labels = host.split(".")
    if len(labels) < 3:
        return "auto"
    return labels[-3]


def filesystem_id(bucket_url, prefix=None):
    digest = hashlib.sha256(bucket_url.encode("utf-8")).digest()
    hash_ = base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
    if prefix:
        return f"{prefix}-s3-{hash_}"
    return f"s3-{hash_}"


@implementer(IFileSystem)
@dataclass(frozen=True)
class S3FileSystem:
    """S3 filesystem identity plus the operations run against it.

    Instances are immutable. Reconfiguring means building a new
    instance; the id only depends on the bucket URL and id prefix.
    """

    id: str
    bucket_url: str
    region: str
    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    external_id: str = None
    id_prefix: str = None
    copy_concurrency: int = field(default=DEFAULT_COPY_CONCURRENCY, compare=False)
    # None waits for directory copies without a time limit
    copy_timeout: float = field(default=None, compare=False)
    client: object = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if self.client is None:
            client = S3Client.from_bucket_url(
                self.bucket_url,
                region_name=self.region,
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                max_pool_connections=self.copy_concurrency,
            )
            object.__setattr__(self, "client", client)

    @classmethod
    def new(
        cls,
        bucket_url,
        access_key_id,
        secret_access_key,
        region=None,
        external_id=None,
        prefix=None,
        **kwargs,
    ):
        bucket_url = bucket_url.rstrip("/")
        return cls(
            id=filesystem_id(bucket_url, prefix),
            bucket_url=bucket_url,
            region=region or region_from_url(bucket_url),
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            external_id=external_id,
            id_prefix=prefix,
            **kwargs,
        )

    @classmethod
    def from_config(cls, config, **kwargs):
        """Build a filesystem from a configuration mapping.

        Raises ConfigurationError naming the expected keys when any
        required key is missing, or when the bucket URL is not an
        http(s) URL.
        """
        if not all(config.get(key) for key in REQUIRED_CONFIG_KEYS):
            raise ConfigurationError(
                "S3 configuration is expected to have keys: bucket_url, "
                f"access_key_id and secret_access_key, but got {sorted(config)!r}"
            )
        parts = urlsplit(config["bucket_url"])
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(
                f"bucket_url must be a valid http(s) URL, got {config['bucket_url']!r}"
            )
        return cls.new(
            config["bucket_url"],
            config["access_key_id"],
            config["secret_access_key"],
            region=config.get("region"),
            external_id=config.get("external_id"),
            **kwargs,
        )

    def to_config(self):
        return {
            "bucket_url": self.bucket_url,
            "region": self.region,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
        }

    @classmethod
    def load(cls, fields, **kwargs):
        """Rebuild a filesystem from its dumped fields."""
        return cls.new(
            fields["bucket_url"],
            fields["access_key_id"],
            fields["secret_access_key"],
            region=fields.get("region"),
            external_id=fields.get("external_id"),
            prefix=fields.get("prefix"),
            **kwargs,
        )

    def dump(self):
        fields = self.to_config()
        if self.external_id:
            fields["external_id"] = self.external_id
        if self.id_prefix:
            fields["prefix"] = self.id_prefix
        return fields

    def external_metadata(self):
        return {"name": self.bucket_url, "error_field": "bucket_url"}

    def resource_identifier(self):
        return ("s3", self.bucket_url)

    def type(self):
        return "global"

    def default_path(self):
        return "/"

    def access(self, path):
        return "read_write"

    # -- Directory emulation --

    def list(self, path, recursive=False):
        paths.assert_dir_path(path)
        dir_key = paths.key_for(path)
        delimiter = None if recursive else "/"
        keys = self.client.list_objects(dir_key, delimiter=delimiter)
        # An empty prefix is indistinguishable from a missing one, except
        # for the root which always exists
        if not keys and dir_key:
            raise NotFoundError(f"no such directory: {path}")
        return sorted(paths.path_for(key) for key in keys if key != dir_key)

    def create_dir(self, path):
        paths.assert_dir_path(path)
        self.client.put_object(paths.key_for(path), b"")

    def remove(self, path):
        key = paths.key_for(path)
        if not paths.dir_path(path):
            self.client.delete_object(key)
            return

        keys = self.client.list_objects(key)
        if not keys:
            raise NotFoundError(f"no such directory: {path}")
        self.client.delete_objects(keys)

    def copy(self, source_path, destination_path):
        paths.assert_same_type(source_path, destination_path)
        source_key = paths.key_for(source_path)
        destination_key = paths.key_for(destination_path)

        if not paths.dir_path(source_path):
            self.client.copy_object(source_key, destination_key)
            return

        keys = self.client.list_objects(source_key)
        if not keys:
            raise NotFoundError(f"no such directory: {source_path}")
        self._copy_keys(
            [(key, destination_key + key[len(source_key) :]) for key in keys]
        )

    def _copy_keys(self, pairs):
        """Copy (source, destination) key pairs concurrently.

        Raises the first failure in submission order. Copies that
        already succeeded are kept, so a failed call may leave a
        partial copy behind.
        """
        executor = ThreadPoolExecutor(max_workers=self.copy_concurrency)
        try:
            futures = [
                executor.submit(self.client.copy_object, source, destination)
                for source, destination in pairs
            ]
            _done, not_done = wait(futures, timeout=self.copy_timeout)
        finally:
            # Queued copies are dropped; copies already running cannot be
            # interrupted and finish in the background
            executor.shutdown(wait=False, cancel_futures=True)
        if not_done:
            raise S3OperationError(
                f"directory copy timed out after {self.copy_timeout}s with "
                f"{len(not_done)} of {len(futures)} copies unfinished"
            )

        errors = [f.exception() for f in futures if f.exception() is not None]
        if not errors:
            return
        for error in errors[1:]:
            logger.warning("Discarding additional directory copy failure: %s", error)
        raise errors[0]

    def rename(self, source_path, destination_path):
        """Copy source to destination, then remove source.

        S3 has no atomic move, so a concurrent writer to destination
        between the existence check and the copy is not detected.
        """
        paths.assert_same_type(source_path, destination_path)
        if self.exists(destination_path):
            raise AlreadyExistsError(f"destination already exists: {destination_path}")
        self.copy(source_path, destination_path)
        self.remove(source_path)

    # -- Regular files --

    def read(self, path):
        paths.assert_regular_path(path)
        return self.client.get_object(paths.key_for(path))

    def write(self, path, content):
        paths.assert_regular_path(path)
        self.client.put_object(paths.key_for(path), content)

    def etag_for(self, path):
        paths.assert_regular_path(path)
        meta = self.client.head_object(paths.key_for(path))
        if meta is None:
            raise NotFoundError(f"no such file: {path}")
        return meta["ETag"]

    def exists(self, path):
        """Return True if path exists.

        A directory exists when any key lives under its prefix, as in
        list, so a placeholder object is not required.
        """
        key = paths.key_for(path)
        if not key:
            return True
        if paths.dir_path(path):
            return bool(self.client.list_objects(key, delimiter="/"))
        return self.client.object_exists(key)

    def resolve_path(self, dir_path, subject):
        return paths.resolve_unix_like_path(dir_path, subject)

    def read_stream_into(self, path, sink):
        paths.assert_regular_path(path)
        return self.client.download_into(paths.key_for(path), sink)

    # -- Streamed writes --

    def write_stream_init(self, path, part_size=None):
        paths.assert_regular_path(path)
        if part_size is None:
            part_size = streaming.DEFAULT_PART_SIZE
        return streaming.init(paths.key_for(path), part_size=part_size)

    def write_stream_chunk(self, state, chunk):
        return streaming.chunk(self.client, state, chunk)

    def write_stream_finish(self, state):
        streaming.finish(self.client, state)

    def write_stream_halt(self, state):
        streaming.halt(self.client, state)

    def write_stream(self, path, chunks, part_size=None):
        """Stream an iterable of byte chunks to a regular file."""
        paths.assert_regular_path(path)
        if part_size is None:
            part_size = streaming.DEFAULT_PART_SIZE
        streaming.write_all(self.client, paths.key_for(path), chunks, part_size=part_size)
