from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Result:
    """Outcome of a best-effort call (sign-out, storage clean-up).

    These calls never raise; a caller that does not care simply drops the value.
    """

    ok: bool
    error: Optional[Exception] = None

    @classmethod
    def success(cls) -> "Result":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: Exception) -> "Result":
        return cls(ok=False, error=error)

    def __bool__(self) -> bool:
        return self.ok
