"""Minimal result types for best-effort side channels.

Email delivery, geolocation, cache writes and live pushes return ``Ok`` or
``Err`` rather than raising, so a caller has to look at the outcome to
ignore it.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from core.errors import DownstreamDegraded

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: DownstreamDegraded

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
