"""
Pydantic models describing how the clients in this package are configured. Every store and blob client can also be
configured directly through keyword arguments; these models exist so configuration can be bound from the environment
(or any other source) in one place, and handed to a client's ``from_settings`` class method.
"""
import os
import typing as t

from pydantic import BaseModel, Field

from bavard_dict_storage.retry import ExceptionPredicate, RetryPolicy, is_retryable


class RetrySettings(BaseModel):
    max_attempts: int = Field(5, ge=1)
    initial_wait: float = Field(0.2, ge=0)
    max_wait: float = Field(10.0, ge=0)

    @classmethod
    def from_env(cls) -> "RetrySettings":
        overrides = {
            "max_attempts": os.getenv("RETRY_MAX_ATTEMPTS"),
            "initial_wait": os.getenv("RETRY_INITIAL_WAIT"),
            "max_wait": os.getenv("RETRY_MAX_WAIT"),
        }
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    def make_policy(self, is_transient: ExceptionPredicate = is_retryable) -> RetryPolicy:
        return RetryPolicy(
            is_transient, max_attempts=self.max_attempts, initial_wait=self.initial_wait, max_wait=self.max_wait
        )


class AwsSettings(BaseModel):
    region_name: t.Optional[str] = None
    endpoint_url: t.Optional[str] = None
    """Overrides the service endpoint, e.g. to point at a local emulator."""
    aws_access_key_id: t.Optional[str] = None
    aws_secret_access_key: t.Optional[str] = None

    @staticmethod
    def _aws_env() -> t.Dict[str, t.Optional[str]]:
        return {
            "region_name": os.getenv("AWS_REGION"),
            "endpoint_url": os.getenv("AWS_ENDPOINT"),
            "aws_access_key_id": os.getenv("AWS_ACCESS_KEY_ID"),
            "aws_secret_access_key": os.getenv("AWS_SECRET_ACCESS_KEY"),
        }


class DynamoDBSettings(AwsSettings):
    table_name: str = Field(..., min_length=1)
    auto_setup: bool = True
    """Whether to create the table (and wait for it to become active) on first use if it doesn't exist yet."""
    read_capacity_units: int = Field(10, ge=1)
    write_capacity_units: int = Field(10, ge=1)
    batch_size: int = Field(25, ge=1, le=25)
    poll_interval: float = Field(5.0, ge=0)
    """Seconds to wait between checks on whether a newly created table has become active."""

    @classmethod
    def from_env(cls, table_name: str, **overrides) -> "DynamoDBSettings":
        values = {k: v for k, v in cls._aws_env().items() if v is not None}
        return cls(table_name=table_name, **{**values, **overrides})


class S3Settings(AwsSettings):
    bucket_name: str = Field(..., min_length=1)

    @classmethod
    def from_env(cls, bucket_name: str, **overrides) -> "S3Settings":
        values = {k: v for k, v in cls._aws_env().items() if v is not None}
        return cls(bucket_name=bucket_name, **{**values, **overrides})


class FirestoreSettings(BaseModel):
    collection_name: str = Field(..., min_length=1)
    project: t.Optional[str] = None
    batch_size: int = Field(25, ge=1, le=500)

    @classmethod
    def from_env(cls, collection_name: str, **overrides) -> "FirestoreSettings":
        project = os.getenv("GOOGLE_CLOUD_PROJECT")
        values = {"project": project} if project is not None else {}
        return cls(collection_name=collection_name, **{**values, **overrides})
