from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

log = logging.getLogger(__name__)


def is_one_shot(cron: Union[str, int, float, None]) -> bool:
    return isinstance(cron, (int, float)) and not isinstance(cron, bool)


def build_trigger(cron: Union[str, int, float]) -> BaseTrigger:
    """Translate a task's `cron` value into an APScheduler trigger.

    Numbers are absolute epoch seconds and fire once. Strings are crontab
    expressions with five fields, or six with a leading seconds column.
    Raises ValueError for anything else.
    """
    if is_one_shot(cron):
        run_date = datetime.fromtimestamp(cron, tz=timezone.utc)
        return DateTrigger(run_date=run_date, timezone=timezone.utc)

    if not isinstance(cron, str):
        raise ValueError(f"cron must be an expression or an epoch, got {cron!r}")

    fields = cron.split()
    if len(fields) == 5:
        return CronTrigger.from_crontab(cron)
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
        )
    raise ValueError(f"Wrong number of fields in cron expression {cron!r}; got {len(fields)}, expected 5 or 6")


class CronTimer:
    """A restartable timer driven by an APScheduler trigger.

    Each arming uses one daemon threading.Timer; the callback runs on that
    thread and the next firing is armed only after it returns. Firings
    missed while the callback was busy are skipped.
    """

    def __init__(self, trigger: BaseTrigger, callback: Callable[[], None], name: str = "") -> None:
        self._trigger = trigger
        self._callback = callback
        self._name = name
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._last_fire: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_fire_time(self) -> Optional[datetime]:
        return self._compute_next(self._last_fire)

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._arm_locked(self._last_fire)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _compute_next(self, previous: Optional[datetime]) -> Optional[datetime]:
        now = datetime.now(timezone.utc)
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        fire_at = self._trigger.get_next_fire_time(previous, now)
        if fire_at is not None and previous is not None and fire_at < now:
            # skip firings missed while the callback ran
            fire_at = self._trigger.get_next_fire_time(None, now)
        return fire_at

    def _arm_locked(self, previous: Optional[datetime]) -> None:
        fire_at = self._compute_next(previous)
        if fire_at is None:
            self._running = False
            return

        now = datetime.now(timezone.utc)
        if previous is None and fire_at < now - timedelta(seconds=1):
            log.warning(json.dumps({
                "event": "schedule_in_past",
                "timer": self._name,
                "fire_at": fire_at.isoformat(),
            }, ensure_ascii=False))
            self._running = False
            return

        delay = max(0.0, (fire_at - now).total_seconds())
        timer = threading.Timer(delay, self._fire, args=(fire_at,))
        timer.daemon = True
        self._timer = timer
        timer.start()
        log.debug(json.dumps({"event": "timer_armed", "timer": self._name, "fire_at": fire_at.isoformat()}))

    def _fire(self, fire_at: datetime) -> None:
        with self._lock:
            if not self._running:
                return
            self._timer = None
            self._last_fire = fire_at
        try:
            self._callback()
        finally:
            with self._lock:
                if self._running and self._timer is None:
                    self._arm_locked(fire_at)
