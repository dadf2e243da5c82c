import typing as t


class DictionaryStorageError(Exception):
    """Base class for all errors raised by this package."""


class InvalidArgumentError(DictionaryStorageError, ValueError):
    """A required identifier, partition key, or input collection was missing or empty. Never retried."""

    def __init__(self, message: str, param_name: t.Optional[str] = None):
        super().__init__(message)
        self.param_name = param_name


class OperationInvalidError(DictionaryStorageError):
    """
    The operation cannot be performed against the remote resource in its current state, e.g. the target table,
    container, bucket, or record does not exist, or the store is read only. Never retried.
    """


class ConfigurationError(DictionaryStorageError):
    """
    A client was configured in a way that can never work, e.g. an unknown region name or an entity type with no
    fields. Fatal for the client instance that raised it.
    """


class TransientRemoteFailure(DictionaryStorageError):
    """A remote call kept failing with retryable errors until the retry policy gave up."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class DecodeInconsistencyError(DictionaryStorageError):
    """A record read back from a back-end is malformed, e.g. it is missing a key attribute. Never retried."""


class RetryableError(DictionaryStorageError):
    """
    Raised internally to signal a condition that a retry is expected to resolve (e.g. a partially processed batch
    write). Every :class:`~bavard_dict_storage.retry.RetryPolicy` treats it as transient.
    """
