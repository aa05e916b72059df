"""Bounded retry policies for the identity-collection states."""

from dataclasses import dataclass
from typing import Callable, Optional
import re

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def sanitized_name(raw: str) -> Optional[str]:
    """Letters and spaces only; None if fewer than two characters remain."""
    name = re.sub(r"[^a-zA-Z\s]", "", raw.strip()).strip()
    name = re.sub(r"\s+", " ", name)
    return name if len(name) >= 2 else None


def regex_email(raw: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(raw)
    return match.group(0) if match else None


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many normal attempts a field gets before the fallback kicks in.

    ``fallback`` turns the raw message into a value, or None when even the
    permissive heuristic finds nothing usable.
    """

    max_attempts: int
    fallback: Callable[[str], Optional[str]]

    def fallback_allowed(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def recover(self, attempts: int, raw: str) -> Optional[str]:
        """Fallback value once every attempt is used up, else None."""
        if not self.fallback_allowed(attempts):
            return None
        return self.fallback(raw)


def name_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, fallback=sanitized_name)


def email_policy(max_attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, fallback=regex_email)
