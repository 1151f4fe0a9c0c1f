from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProgressEvent:
    """One step of a running extraction, as pushed to progress listeners.

    ``progress`` is a 0-100 percentage; ``data`` carries phase-specific
    extras (hop name, strategy, the final result).
    """

    phase: str
    progress: int
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.data,
            "phase": self.phase,
            "progress": self.progress,
            "message": self.message,
        }


ProgressFn = Callable[[ProgressEvent], None]
