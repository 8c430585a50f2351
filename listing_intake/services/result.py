from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    hint: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown", hint: Optional[str] = None) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code, hint=hint)

    @staticmethod
    def rejected(hint: str, code: str = "validation_rejected") -> "Result[T]":
        """Input did not match; ``hint`` is shown to the user as guidance."""
        return Result(ok=False, error=hint, error_code=code, hint=hint)

    def map(self, func: Callable[[T], U]) -> "Result[U]":
        if not self.ok:
            return Result(ok=False, error=self.error, error_code=self.error_code, hint=self.hint)
        return Result.success(func(self.value))
