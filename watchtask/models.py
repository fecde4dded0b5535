from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional


class TaskState(IntEnum):
    ACTIVE = 0
    STOPPED = 1
    EXPIRED = 2

    @classmethod
    def coerce(cls, value: Any) -> "TaskState":
        """Accept a TaskState, its integer value, or its name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown task state: {value!r}") from None
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown task state: {value!r}") from None


@dataclass
class RunCounts:
    run: int = 0
    err: int = 0
    succ: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class LastRun:
    succ: Optional[bool] = None
    date: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProbeResult:
    task_name: str
    success: bool
    status_code: Optional[int]
    latency_ms: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    modified: Optional[bool] = None
    error_type: Optional[str] = None


@dataclass(frozen=True)
class RunResult:
    task_name: str
    started: bool
    success: Optional[bool] = None
    modified: bool = False
    status_code: Optional[int] = None
    latency_ms: int = 0
    error_type: Optional[str] = None

    @classmethod
    def rejected(cls, task_name: str) -> "RunResult":
        """Result for a run refused because another one is still in flight."""
        return cls(task_name=task_name, started=False)


@dataclass(frozen=True)
class PatchFailure:
    task_name: str
    patch: str
    error_type: str
    message: str
