"""Watch tasks: scheduled change detection for remote resources.

A WatchTask fetches a URL on a cron or one-shot schedule, fingerprints the
response, forwards changed content to a callback endpoint and applies named
patches. Persistence is left to change-notification subscribers.

Key modules:
    task        -- WatchTask entity (state machine, probe, run pipeline, patches)
    scheduler   -- CronTimer and trigger construction from cron values
    patches     -- Patch interface and PatchRegistry
    transport   -- requests / curl_cffi HTTP transports
    factory     -- TransportFactory for creating transports
    hashing     -- content fingerprint
    models      -- TaskState, ProbeResult, RunResult and run statistics
"""

from .models import LastRun, PatchFailure, ProbeResult, RunCounts, RunResult, TaskState
from .patches import FunctionPatch, Patch, PatchRegistry, default_registry, register_patch
from .task import WatchTask

__all__ = [
    "FunctionPatch",
    "LastRun",
    "Patch",
    "PatchFailure",
    "PatchRegistry",
    "ProbeResult",
    "RunCounts",
    "RunResult",
    "TaskState",
    "WatchTask",
    "default_registry",
    "register_patch",
]
