from moto import mock_aws
from notebookfs.errors import AlreadyExistsError
from notebookfs.errors import InvalidPathError
from notebookfs.errors import NotFoundError
from notebookfs.errors import S3OperationError
from notebookfs.interfaces import IFileSystem
from notebookfs.s3 import S3FileSystem
from notebookfs.s3client import S3Client

import boto3
import io
import pytest
import threading


BUCKET_URL = "https://test-bucket.s3.us-east-1.amazonaws.com"


@pytest.fixture
def s3_env():
    with mock_aws():
        boto3.client("s3", region_name="us-east-1").create_bucket(
            Bucket="test-bucket"
        )
        yield


@pytest.fixture
def fs(s3_env):
    return S3FileSystem.new(BUCKET_URL, "key-id", "secret")


def _raw_keys():
    s3 = boto3.client("s3", region_name="us-east-1")
    resp = s3.list_objects_v2(Bucket="test-bucket")
    return sorted(obj["Key"] for obj in resp.get("Contents", []))


class FailingCopyClient(S3Client):
    """S3Client whose copies fail for selected source keys."""

    def __init__(self, failing_keys, **kwargs):
        super().__init__(**kwargs)
        self.failing_keys = set(failing_keys)

    def copy_object(self, source_key, destination_key):
        if source_key in self.failing_keys:
            raise S3OperationError(f"copy failed for {source_key}", code="InternalError")
        super().copy_object(source_key, destination_key)


class TestIdentity:
    def test_interface_provided(self, fs):
        assert IFileSystem.providedBy(fs)

    def test_id_is_stable_for_same_bucket(self, s3_env):
        fs1 = S3FileSystem.new(BUCKET_URL, "a", "b")
        fs2 = S3FileSystem.new(BUCKET_URL + "/", "other", "keys", region="eu-west-1")
        assert fs1.id == fs2.id
        assert fs1.id.startswith("s3-")
        assert "=" not in fs1.id

    def test_id_prefix(self, s3_env):
        plain = S3FileSystem.new(BUCKET_URL, "a", "b")
        prefixed = S3FileSystem.new(BUCKET_URL, "a", "b", prefix="team")
        assert prefixed.id == "team-" + plain.id

    def test_different_buckets_have_different_ids(self, s3_env):
        fs1 = S3FileSystem.new(BUCKET_URL, "a", "b")
        fs2 = S3FileSystem.new("http://localhost:9000/other", "a", "b")
        assert fs1.id != fs2.id

    def test_region_inferred_from_url(self, fs):
        assert fs.region == "us-east-1"

    def test_region_defaults_to_auto(self, s3_env):
        fs = S3FileSystem.new("http://localhost:9000/bucket", "a", "b")
        assert fs.region == "auto"

    def test_immutable(self, fs):
        with pytest.raises(AttributeError):
            fs.bucket_url = "https://elsewhere"

    def test_secrets_not_in_repr(self, fs):
        assert "secret" not in repr(fs)

    def test_static_properties(self, fs):
        assert fs.resource_identifier() == ("s3", BUCKET_URL)
        assert fs.type() == "global"
        assert fs.default_path() == "/"
        assert fs.access("/any.txt") == "read_write"
        assert fs.external_metadata() == {
            "name": BUCKET_URL,
            "error_field": "bucket_url",
        }


class TestReadWrite:
    def test_write_and_read(self, fs):
        fs.write("/dir/file.txt", b"content")
        assert fs.read("/dir/file.txt") == b"content"
        assert _raw_keys() == ["dir/file.txt"]

    def test_read_missing(self, fs):
        with pytest.raises(NotFoundError):
            fs.read("/missing.txt")

    def test_read_dir_path_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.read("/dir/")

    def test_write_dir_path_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.write("/dir/", b"x")

    def test_read_stream_into(self, fs):
        fs.write("/data.bin", b"streamed content")
        sink = io.BytesIO()
        assert fs.read_stream_into("/data.bin", sink) is sink
        assert sink.getvalue() == b"streamed content"


class TestList:
    @pytest.fixture
    def tree(self, fs):
        fs.create_dir("/dir/")
        fs.write("/dir/a.txt", b"a")
        fs.write("/dir/sub/b.txt", b"b")
        fs.write("/top.txt", b"t")
        return fs

    def test_list_root(self, tree):
        assert tree.list("/") == ["/dir/", "/top.txt"]

    def test_list_dir_excludes_placeholder(self, tree):
        assert tree.list("/dir/") == ["/dir/a.txt", "/dir/sub/"]

    def test_list_recursive(self, tree):
        assert tree.list("/dir/", recursive=True) == [
            "/dir/a.txt",
            "/dir/sub/b.txt",
        ]

    def test_list_root_never_includes_root(self, fs):
        fs.create_dir("/dir/")
        assert fs.list("/") == ["/dir/"]

    def test_list_is_stable(self, tree):
        assert tree.list("/dir/") == tree.list("/dir/")

    def test_list_empty_root(self, fs):
        assert fs.list("/") == []

    def test_list_missing_dir(self, fs):
        with pytest.raises(NotFoundError):
            fs.list("/missing/")

    def test_list_regular_path_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.list("/file.txt")

    def test_empty_created_dir_is_listable(self, fs):
        fs.create_dir("/empty/")
        assert fs.list("/empty/") == []


class TestCreateDir:
    def test_creates_placeholder(self, fs):
        fs.create_dir("/new/")
        assert _raw_keys() == ["new/"]
        assert fs.exists("/new/")

    def test_regular_path_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.create_dir("/new")


class TestRemove:
    def test_remove_file(self, fs):
        fs.write("/file.txt", b"x")
        fs.remove("/file.txt")
        assert not fs.exists("/file.txt")

    def test_remove_dir_removes_everything_under_prefix(self, fs):
        fs.create_dir("/dir/")
        fs.write("/dir/a.txt", b"a")
        fs.write("/dir/sub/b.txt", b"b")
        fs.write("/keep.txt", b"k")
        fs.remove("/dir/")
        assert _raw_keys() == ["keep.txt"]

    def test_remove_missing_dir(self, fs):
        with pytest.raises(NotFoundError):
            fs.remove("/missing/")


class TestCopy:
    def test_copy_file(self, fs):
        fs.write("/src.txt", b"data")
        fs.copy("/src.txt", "/dst.txt")
        assert fs.read("/dst.txt") == b"data"
        assert fs.read("/src.txt") == b"data"

    def test_copy_mixed_kinds_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.copy("/src/", "/dst.txt")

    def test_copy_dir(self, fs):
        fs.create_dir("/src/")
        for i in range(20):
            fs.write(f"/src/f{i}.txt", f"content {i}".encode())
        fs.write("/src/sub/deep.txt", b"deep")

        fs.copy("/src/", "/dst/")

        assert fs.list("/dst/", recursive=True) == sorted(
            p.replace("/src/", "/dst/", 1) for p in fs.list("/src/", recursive=True)
        )
        assert fs.read("/dst/f7.txt") == b"content 7"
        assert fs.read("/dst/sub/deep.txt") == b"deep"
        assert fs.etag_for("/dst/f3.txt") == fs.etag_for("/src/f3.txt")
        assert fs.exists("/dst/")

    def test_copy_missing_dir(self, fs):
        with pytest.raises(NotFoundError):
            fs.copy("/missing/", "/dst/")

    def test_copy_dir_single_failure(self, s3_env):
        client = FailingCopyClient(
            failing_keys={"src/b.txt"},
            bucket_name="test-bucket",
            region_name="us-east-1",
        )
        fs = S3FileSystem.new(BUCKET_URL, "a", "b", client=client)
        for name in ("a", "b", "c", "d"):
            fs.write(f"/src/{name}.txt", name.encode())

        with pytest.raises(S3OperationError, match="src/b.txt"):
            fs.copy("/src/", "/dst/")

        copied = [k for k in _raw_keys() if k.startswith("dst/")]
        assert "dst/b.txt" not in copied
        assert len(copied) <= 3

    def test_copy_dir_reports_first_failure(self, s3_env):
        client = FailingCopyClient(
            failing_keys={"src/b.txt", "src/d.txt"},
            bucket_name="test-bucket",
            region_name="us-east-1",
        )
        fs = S3FileSystem.new(BUCKET_URL, "a", "b", client=client)
        for name in ("a", "b", "c", "d"):
            fs.write(f"/src/{name}.txt", name.encode())

        with pytest.raises(S3OperationError, match="src/b.txt"):
            fs.copy("/src/", "/dst/")

    def test_copy_dir_timeout(self, s3_env):
        release = threading.Event()

        class BlockingClient(S3Client):
            def copy_object(self, source_key, destination_key):
                release.wait(5)

        client = BlockingClient(bucket_name="test-bucket", region_name="us-east-1")
        fs = S3FileSystem.new(BUCKET_URL, "a", "b", client=client, copy_timeout=0.1)
        fs.write("/src/a.txt", b"a")
        try:
            with pytest.raises(S3OperationError, match="timed out"):
                fs.copy("/src/", "/dst/")
        finally:
            release.set()


class TestRename:
    def test_rename_file(self, fs):
        fs.write("/old.txt", b"data")
        fs.rename("/old.txt", "/new.txt")
        assert fs.read("/new.txt") == b"data"
        assert not fs.exists("/old.txt")

    def test_rename_dir(self, fs):
        fs.create_dir("/old/")
        fs.write("/old/a.txt", b"a")
        fs.rename("/old/", "/new/")
        assert _raw_keys() == ["new/", "new/a.txt"]

    def test_rename_onto_existing_fails(self, fs):
        fs.write("/src.txt", b"source")
        fs.write("/dst.txt", b"destination")
        with pytest.raises(AlreadyExistsError):
            fs.rename("/src.txt", "/dst.txt")
        assert fs.read("/src.txt") == b"source"
        assert fs.read("/dst.txt") == b"destination"

    def test_rename_dir_onto_dir_without_placeholder_fails(self, fs):
        fs.write("/src/a.txt", b"source")
        fs.write("/dst/a.txt", b"destination")
        with pytest.raises(AlreadyExistsError):
            fs.rename("/src/", "/dst/")
        assert fs.read("/src/a.txt") == b"source"
        assert fs.read("/dst/a.txt") == b"destination"

    def test_rename_mixed_kinds_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.rename("/src.txt", "/dst/")


class TestEtagExists:
    def test_etag_for(self, fs):
        fs.write("/file.txt", b"x")
        etag = fs.etag_for("/file.txt")
        assert etag
        fs.write("/file.txt", b"changed")
        assert fs.etag_for("/file.txt") != etag

    def test_etag_for_missing(self, fs):
        with pytest.raises(NotFoundError):
            fs.etag_for("/missing.txt")

    def test_exists(self, fs):
        fs.write("/file.txt", b"x")
        assert fs.exists("/file.txt") is True
        assert fs.exists("/missing.txt") is False

    def test_dir_exists_without_placeholder(self, fs):
        fs.write("/dir/a.txt", b"x")
        assert fs.exists("/dir/") is True
        assert fs.exists("/other/") is False

    def test_root_exists(self, fs):
        assert fs.exists("/")


class TestResolvePath:
    def test_resolve(self, fs):
        assert fs.resolve_path("/dir/sub/", "../file.txt") == "/dir/file.txt"


class TestWriteStream:
    def test_small_stream(self, fs):
        state = fs.write_stream_init("/small.txt", part_size=100)
        state = fs.write_stream_chunk(state, b"hello ")
        state = fs.write_stream_chunk(state, b"world")
        fs.write_stream_finish(state)
        assert fs.read("/small.txt") == b"hello world"

    def test_multipart_stream(self, fs):
        part_size = 5 * 1024 * 1024
        chunks = [b"a" * (1024 * 1024)] * 5 + [b"b" * 100]
        state = fs.write_stream_init("/big.bin", part_size=part_size)
        for data in chunks:
            state = fs.write_stream_chunk(state, data)
        assert state.parts == 1
        fs.write_stream_finish(state)
        assert fs.read("/big.bin") == b"".join(chunks)

    def test_halt_leaves_nothing(self, fs):
        state = fs.write_stream_init("/halted.bin", part_size=5 * 1024 * 1024)
        state = fs.write_stream_chunk(state, b"x" * (5 * 1024 * 1024))
        fs.write_stream_halt(state)
        assert not fs.exists("/halted.bin")

    def test_zero_part_size_not_replaced_by_default(self, fs):
        with pytest.raises(ValueError):
            fs.write_stream_init("/file.bin", part_size=0)
        with pytest.raises(ValueError):
            fs.write_stream("/file.bin", iter([b"x"]), part_size=0)

    def test_default_part_size(self, fs):
        state = fs.write_stream_init("/file.bin")
        assert state.part_size == 50_000_000
        assert state.key == "file.bin"

    def test_init_dir_path_rejected(self, fs):
        with pytest.raises(InvalidPathError):
            fs.write_stream_init("/dir/")

    def test_write_stream(self, fs):
        fs.write_stream("/iter.txt", iter([b"a", b"b", b"c"]))
        assert fs.read("/iter.txt") == b"abc"
