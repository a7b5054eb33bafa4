import functools
import logging

from django.db import InterfaceError, OperationalError

from ..exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)


def storage_guard(func):
    """Surface an unreachable database as StorageUnavailableError.

    Every other error passes through untouched; only connection-level
    failures become the retriable kind.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            logger.error("Storage unavailable during %s: %s", func.__name__, exc)
            raise StorageUnavailableError(
                f"Ledger storage unavailable during {func.__name__}.",
                operation=func.__name__,
                cause=str(exc),
            ) from exc
    return wrapper
