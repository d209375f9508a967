"""Notification models shared across monitor components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class ChangeKind(str, Enum):
    """Types of filesystem changes reported by a watch source."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangeNotification:
    """A single change observed in the watched directory tree."""

    kind: ChangeKind
    path: Path
    dest_path: Optional[Path] = None

    def describe(self) -> str:
        if self.dest_path is not None:
            return f"{self.kind.value}: {self.path} -> {self.dest_path}"
        return f"{self.kind.value}: {self.path}"


@dataclass(frozen=True)
class ErrorNotification:
    """Diagnostic raised by the notification backend itself."""

    message: str


Notification = Union[ChangeNotification, ErrorNotification]
