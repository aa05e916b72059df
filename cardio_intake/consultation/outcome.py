"""Typed result of a collaborator call.

Every call on the completion path goes through ``attempt`` so a failing
collaborator shows up as a failed ``Outcome`` at the call site instead of an
exception escaping the turn.
"""

from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value (``ok``) or the error that prevented it."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Outcome[T]":
        return cls(ok=False, error=error)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default


async def attempt(call: Awaitable[T], operation: str) -> Outcome[T]:
    """Await ``call``; log and wrap any exception as a failed outcome."""
    try:
        return Outcome.success(await call)
    except Exception as e:
        logger.warning(f"⚠️ {operation} failed (continuing): {e}")
        return Outcome.failure(f"{operation}: {e}")
