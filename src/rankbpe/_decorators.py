"""Timing helpers for long-running steps such as training and rank file loading."""

import functools
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def log_elapsed(logger: logging.Logger, label: str) -> Iterator[None]:
    """Log how long the ``with`` body took at INFO, also when it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.info(f"{label} finished in {elapsed:.3f} s")


def timed(label: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log the run time of the decorated function under ``label``.

    Records go to the logger of the module that defines the function, so
    ``rankbpe.trainer`` reports training time and ``rankbpe.loader`` load time.
    """

    def decorate(func: Callable[P, R]) -> Callable[P, R]:
        logger = logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with log_elapsed(logger, label):
                return func(*args, **kwargs)

        return wrapper

    return decorate
