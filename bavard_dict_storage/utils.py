import typing as t
from itertools import islice

from bavard_dict_storage.errors import InvalidArgumentError


T = t.TypeVar("T")


class ImportExtraError(ImportError):
    """A needed package extra has not been installed."""

    def __init__(self, extra_name: str, feature_name: str):
        super().__init__(f"The `{extra_name}` package extra is required to use `{feature_name}`.")


def require_non_empty(value: t.Any, param_name: str):
    """
    Raises an :class:`~bavard_dict_storage.errors.InvalidArgumentError` if ``value`` is ``None``, or if it is a sized
    value (e.g. a string) with a length of zero. Returns ``value`` so the check can be used inline.
    """
    if value is None:
        raise InvalidArgumentError(f"[{param_name}] is required.", param_name)
    if hasattr(value, "__len__") and len(value) == 0:
        raise InvalidArgumentError(f"[{param_name}] must not be empty.", param_name)
    return value


def chunked(items: t.Iterable[T], size: int) -> t.Iterator[t.List[T]]:
    """Lazily splits ``items`` into lists of at most ``size`` elements, preserving input order."""
    if size < 1:
        raise InvalidArgumentError("chunk size must be at least 1", "size")
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk
