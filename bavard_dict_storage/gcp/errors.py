from bavard_dict_storage.utils import ImportExtraError


try:
    from google.api_core import exceptions
    from google.api_core.retry import if_transient_error
except ImportError:
    raise ImportExtraError("gcp", __name__)

from bavard_dict_storage.retry import is_retryable


def is_transient_gcp_error(exc: BaseException) -> bool:
    """
    Classifies the errors ``google.api_core`` considers transient (internal errors, throttling, and unavailability),
    plus deadline and contention errors, as transient.
    """
    if is_retryable(exc) or if_transient_error(exc):
        return True
    return isinstance(exc, (exceptions.DeadlineExceeded, exceptions.Aborted, exceptions.GatewayTimeout))
