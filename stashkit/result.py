"""Success/failure outcome returned by every storage operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from stashkit.errors import ErrorCode, ErrorKind, error_for_code, kind_of

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    data: T | None = None
    error_message: str | None = None
    error_code: ErrorCode | None = None

    @classmethod
    def ok(cls, data: T) -> Result[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: ErrorCode | None = None) -> Result[T]:
        return cls(
            success=False,
            error_message=message,
            error_code=code or ErrorCode.UNEXPECTED_ERROR,
        )

    @property
    def kind(self) -> ErrorKind | None:
        return None if self.success else kind_of(self.error_code)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> T:
        """Return the payload or raise the matching ``StorageError``."""
        if not self.success:
            raise error_for_code(
                self.error_code or ErrorCode.UNEXPECTED_ERROR,
                self.error_message or "",
            )
        return self.data  # type: ignore[return-value]
