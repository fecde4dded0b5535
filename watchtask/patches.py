from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

if TYPE_CHECKING:
    from .task import WatchTask


class Patch(ABC):
    """Abstract base class for named post-change transforms.

    A patch receives the live task and the parsed response body, and may
    mutate the task freely. Exceptions are caught by the caller."""

    @abstractmethod
    def apply(self, task: "WatchTask", data: Any) -> None:
        """Apply the transform to the task."""
        raise NotImplementedError


class FunctionPatch(Patch):
    """Adapts a plain `(task, data)` callable to the Patch interface."""

    def __init__(self, fn: Callable[["WatchTask", Any], None]) -> None:
        self._fn = fn

    def apply(self, task: "WatchTask", data: Any) -> None:
        self._fn(task, data)

    def __repr__(self) -> str:
        return f"FunctionPatch({getattr(self._fn, '__name__', self._fn)!r})"


PatchLike = Union[Patch, Callable[["WatchTask", Any], None]]


class PatchRegistry:
    """Thread-safe name -> Patch mapping, populated at startup."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._patches: Dict[str, Patch] = {}

    def register(self, name: str, patch: PatchLike) -> Patch:
        if not name:
            raise ValueError("patch name is required")
        if not isinstance(patch, Patch):
            if not callable(patch):
                raise TypeError(f"patch {name!r} must be a Patch or a callable")
            patch = FunctionPatch(patch)
        with self._lock:
            self._patches[name] = patch
        return patch

    def unregister(self, name: str) -> None:
        with self._lock:
            self._patches.pop(name, None)

    def get(self, name: str) -> Optional[Patch]:
        with self._lock:
            return self._patches.get(name)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._patches)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._patches


default_registry = PatchRegistry()


def register_patch(name: str, registry: Optional[PatchRegistry] = None):
    """Decorator registering a `(task, data)` function or Patch subclass by name."""

    def decorator(obj):
        target = registry if registry is not None else default_registry
        if isinstance(obj, type) and issubclass(obj, Patch):
            target.register(name, obj())
        else:
            target.register(name, obj)
        return obj

    return decorator
