"""
Request Deadlines

A per-request deadline carried in a context variable. The API middleware
opens it; storage checks it before starting and before committing a write,
so an operation that overruns is rolled back instead of completing after
the caller has been told it failed.
"""

import contextvars
import time
from contextlib import contextmanager
from typing import Optional

from .errors import DeadlineExceededError


_current_deadline = contextvars.ContextVar('current_deadline', default=None)


def get_deadline() -> Optional[float]:
    """Monotonic time at which the current operation must give up, if any"""
    return _current_deadline.get()


@contextmanager
def deadline(seconds: float):
    """Run the enclosed block under a deadline ``seconds`` from now"""
    token = _current_deadline.set(time.monotonic() + seconds)
    try:
        yield
    finally:
        _current_deadline.reset(token)


def check_deadline() -> None:
    """Raise DeadlineExceededError if the current deadline has passed"""
    expires_at = _current_deadline.get()
    if expires_at is not None and time.monotonic() >= expires_at:
        raise DeadlineExceededError("Request deadline exceeded")
