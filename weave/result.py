from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from .errors import ErrorKind, WeaveError


T = TypeVar("T")


@dataclass
class Issue:
    """A recoverable condition noticed while an operation kept going."""
    kind: ErrorKind
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        if self.path:
            return f"{self.message}: {self.path}"
        return self.message


@dataclass
class Outcome(Generic[T]):
    """Result of an engine operation.

    Exactly one of ``value`` / ``error`` is meaningful: a failed outcome has
    ``error`` set and ``value`` left as None. Warnings are collected either way
    and never turn a success into a failure.
    """
    value: Optional[T] = None
    error: Optional[WeaveError] = None
    warnings: List[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, warnings: Optional[List[Issue]] = None) -> "Outcome[T]":
        return cls(value=value, warnings=list(warnings or []))

    @classmethod
    def failure(cls, error: WeaveError, warnings: Optional[List[Issue]] = None) -> "Outcome[T]":
        return cls(error=error, warnings=list(warnings or []))

    def warn(self, kind: ErrorKind, message: str, path: Optional[str] = None) -> None:
        self.warnings.append(Issue(kind, message, path))

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
