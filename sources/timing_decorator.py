# timing_decorator.py
import inspect
import functools
import time
from typing import Any, Callable, Optional, TypeVar, cast

from app_logger import logger

F = TypeVar("F", bound=Callable[..., Any])


def timed(label: Optional[str] = None) -> Callable[[F], F]:
    """
    Log how long the wrapped callable took, at DEBUG level (file only).
    Coroutine functions are timed until they complete, not until they
    return a coroutine object.
    """
    def decorator(func: F) -> F:
        tag = label or func.__qualname__

        def _log(start: float) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            logger.debug("[%s] took %.2f ms", tag, elapsed_ms)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                start = time.perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _log(start)
            return cast(F, async_wrapper)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log(start)
        return cast(F, wrapper)
    return decorator
