"""Tagged result variants for calls that fall back instead of failing."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ResultKind(str, Enum):
    OK = "ok"
    FALLBACK = "fallback"
    ERROR = "error"


@dataclass
class Result(Generic[T]):
    """
    Outcome of a call that may degrade.

    ``OK`` carries the genuine value. ``FALLBACK`` carries a substitute value
    (placeholder reply, reused or synthesized session) and the error that
    caused it. ``ERROR`` carries only the error text.
    """
    kind: ResultKind
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(ResultKind.OK, value=value)

    @classmethod
    def fallback(cls, value: T, error: str) -> "Result[T]":
        return cls(ResultKind.FALLBACK, value=value, error=error)

    @classmethod
    def err(cls, error: str) -> "Result[T]":
        return cls(ResultKind.ERROR, error=error)

    @property
    def is_ok(self) -> bool:
        return self.kind is ResultKind.OK

    @property
    def is_fallback(self) -> bool:
        return self.kind is ResultKind.FALLBACK

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR
