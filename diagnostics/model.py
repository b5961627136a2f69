"""Diagnostic result types."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """One finding in one file; ``line`` is 0-based."""

    path: Path
    line: int
    code: str
    severity: Severity
    message: str

    def format(self, root: Optional[Path] = None) -> str:
        """Render as ``path:line: severity [code] message`` with a 1-based line."""
        path = self.path
        if root is not None:
            try:
                path = self.path.relative_to(root)
            except ValueError:
                pass
        return f"{path}:{self.line + 1}: {self.severity.value} [{self.code}] {self.message}"
