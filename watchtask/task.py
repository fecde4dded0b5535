from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .factory import default_transport
from .hashing import make_hash
from .models import LastRun, PatchFailure, ProbeResult, RunCounts, RunResult, TaskState
from .patches import PatchRegistry, default_registry
from .scheduler import CronTimer, build_trigger, is_one_shot
from .transport import Transport

log = logging.getLogger(__name__)

# Epoch values below this are offsets in seconds from construction time.
RELATIVE_EPOCH_THRESHOLD = 1_000_000

Listener = Callable[["WatchTask"], None]


class WatchTask:
    """A named watch on a remote resource.

    The task fetches `url` on its schedule, fingerprints the response and,
    when the fingerprint moves, forwards the body to `callback` (if any),
    records the new hash and runs its `patches`. Persistence is left to
    whoever subscribes to change notifications: every time `updated` moves
    the listeners are called with the task.

    Run statistics (`_counts`, `_last`) and the single-flight flag
    (`_running`) are transient; the timer handle is never serialized.
    """

    def __init__(
        self,
        name: str,
        url: str,
        *,
        state: Union[TaskState, int, str, None] = None,
        callback: Optional[str] = None,
        timeout: Optional[int] = None,
        hash: Optional[str] = None,
        url_template: Optional[str] = None,
        callback_template: Optional[str] = None,
        patches: Union[Sequence[str], str, None] = None,
        cron: Union[str, int, float, None] = None,
        expire_at: Optional[Union[int, float]] = None,
        created: Optional[int] = None,
        updated: Optional[int] = None,
        transport: Optional[Transport] = None,
        registry: Optional[PatchRegistry] = None,
    ) -> None:
        if not name:
            raise ValueError("task.name is required")
        if not url:
            raise ValueError("task.url is required")

        now = _now()
        self._name = name
        self.state = TaskState.ACTIVE if state is None else TaskState.coerce(state)
        self.url = url
        self.callback = callback
        self.timeout = timeout
        self.hash = hash
        self.url_template = url_template
        self.callback_template = callback_template
        if isinstance(patches, str):
            patches = [patches]
        self.patches: List[str] = list(patches or [])

        if is_one_shot(cron) and cron < RELATIVE_EPOCH_THRESHOLD:
            cron = cron + now
        self.cron = cron
        if expire_at and expire_at < RELATIVE_EPOCH_THRESHOLD:
            expire_at = expire_at + now
        self.expire_at = expire_at

        self.created = created or now
        self.updated = updated or self.created

        self._transport = transport or default_transport()
        self._registry = registry or default_registry
        self._listeners: List[Listener] = []
        self._timer: Optional[CronTimer] = None
        self._run_lock = threading.Lock()
        self._running = False
        self._counts = RunCounts()
        self._last = LastRun()

    @classmethod
    def from_dict(
        cls,
        record: Mapping[str, Any],
        transport: Optional[Transport] = None,
        registry: Optional[PatchRegistry] = None,
    ) -> "WatchTask":
        """Build a task from its serialized form or a configuration record."""

        def pick(key: str, alt: Optional[str] = None) -> Any:
            if key in record:
                return record[key]
            return record.get(alt) if alt else None

        task = cls(
            name=pick("name"),
            url=pick("url"),
            state=pick("state"),
            callback=pick("callback"),
            timeout=pick("timeout"),
            hash=pick("hash"),
            url_template=pick("urlTemplate", "url_template"),
            callback_template=pick("callbackTemplate", "callback_template"),
            patches=pick("patches"),
            cron=pick("cron"),
            expire_at=pick("expireAt", "expire_at"),
            created=pick("created"),
            updated=pick("updated"),
            transport=transport,
            registry=registry,
        )

        counts = record.get("_counts")
        if counts:
            task._counts = RunCounts(
                run=int(counts.get("run", 0)),
                err=int(counts.get("err", 0)),
                succ=int(counts.get("succ", 0)),
            )
        last = record.get("_last")
        if last:
            task._last = LastRun(succ=last.get("succ"), date=last.get("date"))
        return task

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def counts(self) -> RunCounts:
        return self._counts

    @property
    def last(self) -> LastRun:
        return self._last

    @property
    def timer(self) -> Optional[CronTimer]:
        return self._timer

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": int(self.state),
            "url": self.url,
            "callback": self.callback,
            "timeout": self.timeout,
            "hash": self.hash,
            "urlTemplate": self.url_template,
            "callbackTemplate": self.callback_template,
            "patches": list(self.patches),
            "cron": self.cron,
            "expireAt": self.expire_at,
            "created": self.created,
            "updated": self.updated,
            "_running": self._running,
            "_counts": self._counts.to_dict(),
            "_last": self._last.to_dict(),
        }

    def __str__(self) -> str:
        return f"WatchTask({self.name!r})"

    __repr__ = __str__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WatchTask):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    # -- change notification -------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        """Register a listener called with the task whenever it should be persisted."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _emit_change(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _touch(self) -> None:
        self.updated = _now()
        self._emit_change()

    # -- state machine -------------------------------------------------------

    def activate(self) -> None:
        if self.state == TaskState.ACTIVE:
            return
        self._transit(TaskState.ACTIVE)
        if self._timer is not None and not self._timer.running:
            self._timer.start()

    def deactivate(self) -> None:
        if self.state == TaskState.STOPPED:
            return
        self._transit(TaskState.STOPPED)
        if self._timer is not None and self._timer.running:
            self._timer.stop()

    def stop(self) -> None:
        self.deactivate()

    def expire(self) -> None:
        if self.state == TaskState.EXPIRED:
            return
        self._transit(TaskState.EXPIRED)
        if self._timer is not None and self._timer.running:
            self._timer.stop()

    def expire_if_due(self, now: Optional[int] = None) -> bool:
        """Expire the task if its `expire_at` deadline has passed.

        Nothing calls this on its own; hosts that want deadline expiry run it
        from a periodic sweep.
        """
        if not self.expire_at:
            return False
        if now is None:
            now = _now()
        if self.expire_at > now:
            return False
        self.expire()
        return True

    def _transit(self, new_state: TaskState) -> None:
        self.state = new_state
        self._touch()

    # -- scheduling ----------------------------------------------------------

    def schedule(self) -> None:
        """(Re)bind the timer to the current `cron` value.

        Always tears the previous timer down first. The new timer is started
        only while the task is ACTIVE. Raises ValueError for a bad `cron`.
        """
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

        if not self.cron:
            return

        trigger = build_trigger(self.cron)
        once = is_one_shot(self.cron)
        self._timer = CronTimer(trigger, partial(self._on_fire, once), name=self.name)
        if self.state == TaskState.ACTIVE:
            self._timer.start()

    def _on_fire(self, once: bool) -> None:
        if self.state != TaskState.ACTIVE:
            return
        try:
            self.run()
        finally:
            if once:
                self.deactivate()

    # -- probe ---------------------------------------------------------------

    def test(self) -> ProbeResult:
        """Fetch `url` once and report whether a run would see a change.

        Writes nothing on the task, run statistics included.
        """
        start_ms = self._now_ms()
        try:
            response = self._transport.get(self.url, timeout=self.timeout or None)
        except Exception as exc:  # noqa: BLE001
            return ProbeResult(
                task_name=self.name,
                success=False,
                status_code=None,
                latency_ms=self._now_ms() - start_ms,
                error_type=type(exc).__name__,
            )

        latency_ms = self._now_ms() - start_ms
        if response.status_code != 200:
            return ProbeResult(
                task_name=self.name,
                success=False,
                status_code=response.status_code,
                latency_ms=latency_ms,
                error_type=f"HTTP_{response.status_code}",
            )

        return ProbeResult(
            task_name=self.name,
            success=True,
            status_code=response.status_code,
            latency_ms=latency_ms,
            headers=dict(response.headers),
            body=response.body,
            modified=self.hash != make_hash(response.headers, response.body),
        )

    # -- run -----------------------------------------------------------------

    def run(self) -> RunResult:
        """Fetch, detect change, deliver and patch. At most one run in flight.

        A second call while a run is in progress returns a result with
        `started=False` and does no I/O.
        """
        with self._run_lock:
            if self._running:
                log.debug(json.dumps({"event": "run_rejected", "task": self.name}))
                return RunResult.rejected(self.name)
            self._running = True

        success = False
        try:
            result = self._run_once()
            success = bool(result.success)
            return result
        finally:
            self._finish(success)

    def _run_once(self) -> RunResult:
        start_ms = self._now_ms()
        timeout = self.timeout or None

        try:
            response = self._transport.get(self.url, timeout=timeout)
        except Exception as exc:  # noqa: BLE001
            return self._failed(start_ms, "fetch", None, type(exc).__name__)
        if response.status_code != 200:
            return self._failed(start_ms, "fetch", response.status_code, f"HTTP_{response.status_code}")

        new_hash = make_hash(response.headers, response.body)
        if new_hash == self.hash:
            return RunResult(
                task_name=self.name,
                started=True,
                success=True,
                modified=False,
                status_code=response.status_code,
                latency_ms=self._now_ms() - start_ms,
            )

        if self.callback:
            forwarded = {
                key: response.headers[key]
                for key in ("date", "content-type")
                if response.headers.get(key) is not None
            }
            try:
                delivered = self._transport.post(self.callback, response.body, headers=forwarded, timeout=timeout)
            except Exception as exc:  # noqa: BLE001
                return self._failed(start_ms, "callback", None, type(exc).__name__)
            if delivered.status_code != 200:
                return self._failed(start_ms, "callback", delivered.status_code, f"HTTP_{delivered.status_code}")

        self.hash = new_hash
        self._touch()
        self._patch(response.headers, response.body)

        return RunResult(
            task_name=self.name,
            started=True,
            success=True,
            modified=True,
            status_code=response.status_code,
            latency_ms=self._now_ms() - start_ms,
        )

    def _failed(self, start_ms: int, stage: str, status_code: Optional[int], error_type: str) -> RunResult:
        log.warning(json.dumps({
            "event": "run_failed",
            "task": self.name,
            "stage": stage,
            "url": self.callback if stage == "callback" else self.url,
            "status_code": status_code,
            "error_type": error_type,
        }, ensure_ascii=False))
        return RunResult(
            task_name=self.name,
            started=True,
            success=False,
            status_code=status_code,
            latency_ms=self._now_ms() - start_ms,
            error_type=error_type,
        )

    def _finish(self, success: bool) -> None:
        with self._run_lock:
            self._last.succ = success
            self._last.date = _now()
            self._counts.run += 1
            if success:
                self._counts.succ += 1
            else:
                self._counts.err += 1
            self._running = False
        log.debug(json.dumps({"event": "run_finished", "task": self.name, "succ": success, "counts": self._counts.to_dict()}))

    # -- patches -------------------------------------------------------------

    def _patch(self, headers: Mapping[str, str], body: Optional[bytes]) -> List[PatchFailure]:
        """Apply the configured patches, in order, to the parsed body.

        Each patch is isolated: a failure is logged and returned, and the
        remaining patches still run. An unparseable body skips the whole
        phase without undoing the change already recorded.
        """
        if not self.patches:
            return []

        try:
            data = json.loads(body or b"")
        except ValueError as exc:
            log.error(json.dumps({
                "event": "patch_body_invalid",
                "task": self.name,
                "content_type": headers.get("content-type"),
                "error": str(exc),
            }, ensure_ascii=False))
            return []

        failures: List[PatchFailure] = []
        for patch_name in list(self.patches):
            patch = self._registry.get(patch_name)
            if patch is None:
                log.warning(json.dumps({"event": "patch_unknown", "task": self.name, "patch": patch_name}))
                continue
            try:
                patch.apply(self, data)
            except Exception as exc:  # noqa: BLE001
                failure = PatchFailure(
                    task_name=self.name,
                    patch=patch_name,
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
                log.warning(json.dumps({"event": "patch_failed", **asdict(failure)}, ensure_ascii=False))
                failures.append(failure)

        self._touch()
        return failures

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)


def _now() -> int:
    return int(time.time())
