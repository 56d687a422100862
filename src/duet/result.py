"""Explicit success/failure values for fallible pipeline stages."""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successful stage outcome."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """A failed stage outcome.

    Attributes:
        error: Human-readable description of the failure.
        kind: Short machine-readable tag (e.g. 'timeout', 'storage').
    """

    error: str
    kind: str = "error"

    @property
    def ok(self) -> bool:
        return False

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]
