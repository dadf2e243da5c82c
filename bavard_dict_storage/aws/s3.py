import os
import typing as t
from io import BytesIO

from loguru import logger

from bavard_dict_storage.utils import ImportExtraError, require_non_empty


try:
    from botocore.exceptions import ClientError
except ImportError:
    raise ImportExtraError("aws", __name__)

from bavard_dict_storage.aws.errors import error_code, is_transient_aws_error
from bavard_dict_storage.aws.regions import create_client
from bavard_dict_storage.errors import ConfigurationError, InvalidArgumentError, OperationInvalidError
from bavard_dict_storage.retry import RetryingProxy, RetryPolicy
from bavard_dict_storage.settings import RetrySettings, S3Settings


_NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NoSuchKey", "NotFound"})


def _is_not_found(exc: ClientError) -> bool:
    return error_code(exc) in _NOT_FOUND_CODES


class S3BlobStorageClient:
    """
    Stores binary blobs as objects in a single S3 bucket. The bucket is created on the first upload if it doesn't
    exist yet. Every call to S3 goes through ``retry_policy``.

    Region, endpoint, and credentials default to the ``AWS_REGION``, ``AWS_ENDPOINT``, ``AWS_ACCESS_KEY_ID``, and
    ``AWS_SECRET_ACCESS_KEY`` environment variables respectively.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        region_name: t.Optional[str] = None,
        endpoint_url: t.Optional[str] = None,
        aws_access_key_id: t.Optional[str] = None,
        aws_secret_access_key: t.Optional[str] = None,
        retry_policy: t.Optional[RetryPolicy] = None,
    ):
        if not bucket_name:
            raise ConfigurationError("an S3 bucket name is required")
        self.bucket_name = bucket_name
        self.region_name = region_name or os.getenv("AWS_REGION")
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy(is_transient_aws_error)
        client = self.retry_policy.execute(
            create_client,
            "s3",
            region_name=self.region_name,
            endpoint_url=endpoint_url or os.getenv("AWS_ENDPOINT"),
            aws_access_key_id=aws_access_key_id or os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=aws_secret_access_key or os.getenv("AWS_SECRET_ACCESS_KEY"),
        )
        self.client = RetryingProxy(client, self.retry_policy)

    @classmethod
    def from_settings(
        cls, settings: S3Settings, *, retry_settings: t.Optional[RetrySettings] = None
    ) -> "S3BlobStorageClient":
        retry_policy = (retry_settings or RetrySettings()).make_policy(is_transient_aws_error)
        return cls(retry_policy=retry_policy, **settings.model_dump())

    def bucket_exists(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket_name)
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise
        return True

    def blob_exists(self, blob_name: str) -> bool:
        require_non_empty(blob_name, "blob_name")
        if not self.bucket_exists():
            return False
        return self._object_exists(blob_name)

    def upload_blob(self, source: t.BinaryIO, blob_name: str):
        """
        Uploads the full contents of the ``source`` stream (rewound first, if it can be) as the blob ``blob_name``,
        replacing it if it already exists.
        """
        require_non_empty(source, "source")
        require_non_empty(blob_name, "blob_name")
        if source.seekable():
            source.seek(0)
        body = source.read()
        if not body:
            raise InvalidArgumentError("[source] is empty.", "source")
        if not self.bucket_exists():
            self._create_bucket()
        self.client.put_object(Bucket=self.bucket_name, Key=blob_name, Body=body)

    def download_blob(self, blob_name: str) -> BytesIO:
        """Downloads the blob ``blob_name`` into an in-memory stream, rewound to its start."""
        self._require_blob(blob_name)

        def read_object() -> bytes:
            # Reading the body streams from S3 too, so the whole read has to be retried together.
            return self.client.unwrapped.get_object(Bucket=self.bucket_name, Key=blob_name)["Body"].read()

        stream = BytesIO(self.retry_policy.execute(read_object))
        stream.seek(0)
        return stream

    def delete_blob(self, blob_name: str):
        self._require_blob(blob_name)
        self.client.delete_object(Bucket=self.bucket_name, Key=blob_name)

    def list_blobs(self) -> t.List[str]:
        """Returns the names of all the blobs in the bucket."""
        self._require_bucket()
        names = []
        request = {"Bucket": self.bucket_name}
        while True:
            res = self.client.list_objects_v2(**request)
            names.extend(obj["Key"] for obj in res.get("Contents", []))
            if not res.get("IsTruncated"):
                return names
            request["ContinuationToken"] = res["NextContinuationToken"]

    def _object_exists(self, blob_name: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=blob_name)
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise
        return True

    def _require_bucket(self):
        if not self.bucket_exists():
            raise OperationInvalidError(f"Bucket [{self.bucket_name}] does not exist.")

    def _require_blob(self, blob_name: str):
        require_non_empty(blob_name, "blob_name")
        self._require_bucket()
        if not self._object_exists(blob_name):
            raise OperationInvalidError(f"Blob [{self.bucket_name}/{blob_name}] does not exist.")

    def _create_bucket(self):
        request = {"Bucket": self.bucket_name}
        if self.region_name and self.region_name != "us-east-1":
            # us-east-1 is the default location, and S3 rejects it as an explicit constraint.
            request["CreateBucketConfiguration"] = {"LocationConstraint": self.region_name}
        try:
            self.client.create_bucket(**request)
        except ClientError as exc:
            if error_code(exc) != "BucketAlreadyOwnedByYou":
                raise
        logger.info(f"created S3 bucket {self.bucket_name}")
