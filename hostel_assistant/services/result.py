from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a best-effort side effect (staff notification) that must not raise into the turn."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, code: str = "unknown") -> "Result[T]":
        return cls(ok=False, error=error, error_code=code)

    @classmethod
    def from_exception(cls, exc: BaseException, code: str) -> "Result[T]":
        return cls(ok=False, error=f"{type(exc).__name__}: {exc}", error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
