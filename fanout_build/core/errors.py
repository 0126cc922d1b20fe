from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class BuildError(Exception):
    """Base error envelope. Carries a stable code so callers can branch on it."""

    code: str
    message: str
    target: Optional[str] = None
    path: Optional[str] = None
    file: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.target:
            parts.append(self.target)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<build>"
        return f"{loc}: {self.code}: {self.message}"


class PlanLoadError(BuildError):
    pass


class PlanValidationError(BuildError):
    pass


class DynamicBranchError(BuildError):
    """Raised when a dynamic target cannot be split into sub-targets."""


class CacheMissError(BuildError):
    pass


class GraphCycleError(BuildError):
    pass
