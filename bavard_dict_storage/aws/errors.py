from bavard_dict_storage.utils import ImportExtraError


try:
    from botocore.exceptions import ClientError, ConnectionError, HTTPClientError
except ImportError:
    raise ImportExtraError("aws", __name__)

from bavard_dict_storage.retry import is_retryable


TRANSIENT_ERROR_CODES = frozenset(
    {
        "InternalFailure",
        "InternalServerError",
        "LimitExceededException",
        "ProvisionedThroughputExceededException",
        "RequestLimitExceeded",
        "RequestTimeout",
        "RequestTimeoutException",
        "ServiceUnavailable",
        "SlowDown",
        "ThrottledException",
        "Throttling",
        "ThrottlingException",
        "TransactionInProgressException",
    }
)
"""AWS error codes that a retry can be expected to resolve."""


def error_code(exc: BaseException) -> str:
    """The AWS error code of a botocore ``ClientError``, or an empty string for any other exception."""
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""


def is_transient_aws_error(exc: BaseException) -> bool:
    """Classifies throttling, 5xx, timeout, and connection-level botocore errors as transient."""
    if is_retryable(exc) or isinstance(exc, (ConnectionError, HTTPClientError)):
        return True
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return error_code(exc) in TRANSIENT_ERROR_CODES or status >= 500
    return False
