from zope.interface import Interface


class IS3Client(Interface):
    """Abstraction over S3-compatible object storage.

    Every method is a single synchronous request. Failures raise
    S3OperationError; no retries are added on top of the transport.
    """

    def list_objects(prefix, delimiter=None):
        """Return keys (and common prefixes when delimited) under prefix."""

    def get_object(key):
        """Return the object content as bytes."""

    def download_into(key, sink):
        """Stream the object content into a writable file-like sink."""

    def put_object(key, body):
        """Store body under key, replacing any existing object."""

    def delete_object(key):
        """Delete an S3 object."""

    def delete_objects(keys):
        """Delete many keys with batched requests."""

    def head_object(key):
        """Return metadata dict for an S3 object, or None if not found."""

    def object_exists(key):
        """Return True if an object exists under key."""

    def copy_object(source_key, destination_key):
        """Server-side copy within the bucket."""

    def create_multipart_upload(key):
        """Start a multipart upload and return its upload id."""

    def upload_part(key, upload_id, part_number, body):
        """Upload one part and return its ETag."""

    def complete_multipart_upload(key, upload_id, etags):
        """Finalize an upload from part ETags listed in part-number order."""

    def abort_multipart_upload(key, upload_id):
        """Discard an unfinished multipart upload."""


class IFileSystem(Interface):
    """Backend-agnostic filesystem used by the notebook application.

    Paths are absolute strings; a trailing "/" marks a directory.
    Operations check the path kind they expect and raise
    InvalidPathError before touching the backend.
    """

    def resource_identifier():
        """Return a value identifying the underlying storage resource."""

    def type():
        """Return "local" or "global" depending on where data lives."""

    def default_path():
        """Return the directory a file browser should start in."""

    def list(path, recursive):
        """Return paths of the entries under directory path."""

    def read(path):
        """Return the content of a regular file."""

    def write(path, content):
        """Write content to a regular file."""

    def access(path):
        """Return the access level for path."""

    def create_dir(path):
        """Create a directory."""

    def remove(path):
        """Remove a file, or a directory with everything under it."""

    def copy(source_path, destination_path):
        """Copy a file to a file, or a directory to a directory."""

    def rename(source_path, destination_path):
        """Move source to destination, refusing to overwrite."""

    def etag_for(path):
        """Return the content fingerprint of a regular file."""

    def exists(path):
        """Return True if path exists."""

    def resolve_path(dir_path, subject):
        """Resolve subject relative to dir_path."""

    def write_stream_init(path, part_size=None):
        """Return the initial state of a streamed write to path."""

    def write_stream_chunk(state, chunk):
        """Append chunk to the stream and return the next state."""

    def write_stream_finish(state):
        """Commit everything written to the stream."""

    def write_stream_halt(state):
        """Cancel the stream, discarding anything uploaded so far."""

    def read_stream_into(path, sink):
        """Stream the content of a regular file into sink and return it."""

    def dump():
        """Return the serializable fields needed to load this filesystem."""

    def external_metadata():
        """Return display name and the config field to blame on errors."""
