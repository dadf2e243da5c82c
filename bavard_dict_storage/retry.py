"""
Transient fault handling. Every remote call made by the clients in this package runs through a :class:`RetryPolicy`,
either directly via :meth:`RetryPolicy.execute`, or by wrapping a whole SDK client in a :class:`RetryingProxy`.
"""
import typing as t
from functools import wraps

from loguru import logger
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from bavard_dict_storage.errors import ConfigurationError, RetryableError, TransientRemoteFailure


T = t.TypeVar("T")
ExceptionPredicate = t.Callable[[BaseException], bool]


def is_retryable(exc: BaseException) -> bool:
    """The baseline transient-fault classifier. Only our own :class:`RetryableError` signal qualifies."""
    return isinstance(exc, RetryableError)


def _describe(operation: t.Callable) -> str:
    return getattr(operation, "__qualname__", None) or getattr(operation, "__name__", None) or repr(operation)


class RetryPolicy:
    """
    Executes remote operations, retrying them with exponential backoff when they fail in a way that ``is_transient``
    classifies as transient. Non-transient failures propagate immediately, unchanged. When the attempt bound is
    exhausted, a :class:`~bavard_dict_storage.errors.TransientRemoteFailure` is raised, chained to the last error.

    Parameters
    ----------
    is_transient : callable, optional
        Classifies an exception as transient (retryable) or not. :class:`~bavard_dict_storage.errors.RetryableError`
        is always considered transient, whatever this classifier says.
    max_attempts : int
        The maximum number of times an operation is attempted, including the first attempt.
    initial_wait : float
        The backoff multiplier, in seconds. The ``n``-th retry waits ``initial_wait * 2 ** (n - 1)`` seconds.
    max_wait : float
        The longest a single backoff wait may last, in seconds.
    """

    def __init__(
        self,
        is_transient: ExceptionPredicate = is_retryable,
        *,
        max_attempts: int = 5,
        initial_wait: float = 0.2,
        max_wait: float = 10.0,
    ):
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
        self._is_transient = is_transient
        self.max_attempts = max_attempts
        self.initial_wait = initial_wait
        self.max_wait = max_wait
        self._retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=initial_wait, max=max_wait),
            retry=retry_if_exception(self.is_transient),
            before_sleep=self._log_retry,
            reraise=False,
        )

    def is_transient(self, exc: BaseException) -> bool:
        return is_retryable(exc) or self._is_transient(exc)

    def execute(self, operation: t.Callable[..., T], *args, **kwargs) -> T:
        """Calls ``operation(*args, **kwargs)`` under this policy, returning its result."""
        try:
            # Each call gets its own copy so concurrent callers don't share attempt state.
            return self._retrying.copy()(operation, *args, **kwargs)
        except RetryError as exc:
            last_attempt = exc.last_attempt
            cause = last_attempt.exception()
            raise TransientRemoteFailure(
                f"`{_describe(operation)}` failed after {last_attempt.attempt_number} attempts: {cause}",
                last_attempt.attempt_number,
            ) from cause

    def wrap(self, operation: t.Callable[..., T]) -> t.Callable[..., T]:
        """Decorator form of :meth:`execute`."""

        @wraps(operation)
        def execute_with_retries(*args, **kwargs):
            return self.execute(operation, *args, **kwargs)

        return execute_with_retries

    @staticmethod
    def _log_retry(retry_state: RetryCallState):
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"transient failure calling `{_describe(retry_state.fn)}` (attempt {retry_state.attempt_number}), "
            f"retrying in {wait:.2f}s: {exc!r}"
        )


class RetryingProxy:
    """
    Wraps an SDK client (e.g. a boto3 client) so that every method called on it is executed through ``policy``.
    Non-callable attributes are passed through as-is.
    """

    def __init__(self, target: t.Any, policy: RetryPolicy):
        self._target = target
        self._policy = policy

    @property
    def unwrapped(self) -> t.Any:
        return self._target

    def __getattr__(self, name: str):
        attr = getattr(self._target, name)
        if callable(attr):
            return self._policy.wrap(attr)
        return attr
