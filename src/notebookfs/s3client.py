from botocore.config import Config
from botocore.exceptions import ClientError
from notebookfs.errors import NotFoundError
from notebookfs.errors import S3OperationError
from notebookfs.interfaces import IS3Client
from urllib.parse import urlsplit
from zope.interface import implementer

import boto3
import logging


logger = logging.getLogger(__name__)

# DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

DOWNLOAD_CHUNK_SIZE = 1024 * 1024

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


def split_bucket_url(bucket_url):
    """Split a bucket URL into (endpoint_url, bucket_name).

    Path style URLs (http://localhost:9000/bucket) keep the host as the
    endpoint. Virtual-host style URLs (https://bucket.s3.region.amazonaws.com)
    take the first host label as the bucket name. AWS endpoints return None
    so that boto3 picks the regional default.
    """
    parts = urlsplit(bucket_url.rstrip("/"))
    if not parts.scheme or not parts.hostname:
        raise ValueError(f"invalid bucket URL: {bucket_url!r}")

    path = parts.path.strip("/")
    if path:
        endpoint_url = f"{parts.scheme}://{parts.netloc}"
        bucket_name = path.split("/", 1)[0]
    else:
        bucket_name, _, host = parts.netloc.partition(".")
        if not host:
            raise ValueError(f"bucket URL has no bucket name: {bucket_url!r}")
        endpoint_url = f"{parts.scheme}://{host}"

    if parts.hostname.endswith(".amazonaws.com"):
        endpoint_url = None
    return endpoint_url, bucket_name


@implementer(IS3Client)
class S3Client:
    """Thin boto3 wrapper for S3-compatible object storage."""

    def __init__(
        self,
        bucket_name,
        endpoint_url=None,
        region_name=None,
        aws_access_key_id=None,
        aws_secret_access_key=None,
        addressing_style="auto",
        connect_timeout=60,
        read_timeout=60,
        max_pool_connections=None,
    ):
        self.bucket_name = bucket_name

        config_kwargs = {
            "s3": {"addressing_style": addressing_style},
            "connect_timeout": connect_timeout,
            "read_timeout": read_timeout,
        }
        if max_pool_connections:
            config_kwargs["max_pool_connections"] = max_pool_connections

        kwargs = {"config": Config(**config_kwargs)}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
            if endpoint_url.startswith("http://"):
                logger.warning(
                    "S3 endpoint %s is plain HTTP: data and credentials are "
                    "transmitted in cleartext",
                    endpoint_url,
                )
        if region_name and region_name != "auto":
            kwargs["region_name"] = region_name
        if aws_access_key_id:
            kwargs["aws_access_key_id"] = aws_access_key_id
        if aws_secret_access_key:
            kwargs["aws_secret_access_key"] = aws_secret_access_key

        self._client = boto3.client("s3", **kwargs)

    @classmethod
    def from_bucket_url(cls, bucket_url, **kwargs):
        endpoint_url, bucket_name = split_bucket_url(bucket_url)
        return cls(bucket_name, endpoint_url=endpoint_url, **kwargs)

    def _wrap_client_error(self, e, operation, key):
        """Wrap ClientError in a generic error, logging the original at DEBUG."""
        logger.debug("S3 %s failed for key=%s: %s", operation, key, e)
        code = e.response["Error"].get("Code", "Unknown")
        if code in _NOT_FOUND_CODES:
            raise NotFoundError(f"no such key: {key}") from e
        raise S3OperationError(
            f"S3 {operation} failed for key={key}: {code}", code=code
        ) from e

    def list_objects(self, prefix="", delimiter=None):
        kwargs = {"Bucket": self.bucket_name, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        paginator = self._client.get_paginator("list_objects_v2")
        keys = []
        try:
            for page in paginator.paginate(**kwargs):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
                keys.extend(cp["Prefix"] for cp in page.get("CommonPrefixes", []))
        except ClientError as e:
            self._wrap_client_error(e, "list", prefix)
        return keys

    def get_object(self, key):
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as e:
            self._wrap_client_error(e, "get", key)

    def download_into(self, key, sink):
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            for data in response["Body"].iter_chunks(DOWNLOAD_CHUNK_SIZE):
                sink.write(data)
        except ClientError as e:
            self._wrap_client_error(e, "download", key)
        return sink

    def put_object(self, key, body=b""):
        try:
            response = self._client.put_object(
                Bucket=self.bucket_name, Key=key, Body=body or b""
            )
        except ClientError as e:
            self._wrap_client_error(e, "put", key)
        return response.get("ETag")

    def delete_object(self, key):
        try:
            self._client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self._wrap_client_error(e, "delete", key)

    def delete_objects(self, keys):
        """Delete keys in batches, raising if any key could not be deleted.

        All batches are sent before the failure is reported, so a raised
        error may leave some keys deleted.
        """
        keys = list(keys)
        failed = []
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={
                        "Objects": [{"Key": key} for key in batch],
                        "Quiet": True,
                    },
                )
            except ClientError as e:
                self._wrap_client_error(e, "batch delete", batch[0])
            for error in response.get("Errors", []):
                logger.debug(
                    "S3 batch delete failed for key=%s: %s",
                    error.get("Key"),
                    error.get("Code"),
                )
                failed.append(error.get("Key"))
        if failed:
            raise S3OperationError(
                f"S3 batch delete failed for {len(failed)} of {len(keys)} keys: "
                + ", ".join(failed[:10])
            )

    def head_object(self, key):
        try:
            return self._client.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response["Error"]["Code"] in _NOT_FOUND_CODES:
                return None
            self._wrap_client_error(e, "head", key)

    def object_exists(self, key):
        return self.head_object(key) is not None

    def copy_object(self, source_key, destination_key):
        try:
            self._client.copy_object(
                Bucket=self.bucket_name,
                Key=destination_key,
                CopySource={"Bucket": self.bucket_name, "Key": source_key},
            )
        except ClientError as e:
            self._wrap_client_error(e, "copy", source_key)

    def create_multipart_upload(self, key):
        try:
            response = self._client.create_multipart_upload(
                Bucket=self.bucket_name, Key=key
            )
        except ClientError as e:
            self._wrap_client_error(e, "multipart init", key)
        return response["UploadId"]

    def upload_part(self, key, upload_id, part_number, body):
        try:
            response = self._client.upload_part(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        except ClientError as e:
            self._wrap_client_error(e, "upload part", key)
        return response["ETag"]

    def complete_multipart_upload(self, key, upload_id, etags):
        parts = [
            {"PartNumber": number, "ETag": etag}
            for number, etag in enumerate(etags, start=1)
        ]
        try:
            self._client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except ClientError as e:
            self._wrap_client_error(e, "multipart complete", key)

    def abort_multipart_upload(self, key, upload_id):
        try:
            self._client.abort_multipart_upload(
                Bucket=self.bucket_name, Key=key, UploadId=upload_id
            )
        except ClientError as e:
            self._wrap_client_error(e, "multipart abort", key)
