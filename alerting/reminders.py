from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from api.db import JsonStore
from api.schemas import Machine
from alerting.notifier import Notifier
from shared.errors import NotFound
from shared.logging import get_logger
from shared.timeutil import parse_timestamp, utcnow

log = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_until(due: datetime, now: datetime) -> float:
    return (due - now).total_seconds() / SECONDS_PER_DAY


def reminder_gap_elapsed(last_sent: Optional[datetime], now: datetime) -> bool:
    return last_sent is None or days_until(now, last_sent) >= 1


def format_maintenance_reminder(machine: Machine, diff_days: float) -> tuple[str, str]:
    subject = f"🛠️ Maintenance due soon for machine: {machine.name}"
    body = (
        f"Machine: {machine.name}\n"
        f"Code: {machine.code or '-'}\n"
        f"Location: {machine.location or '-'}\n"
        "\n"
        f"Next maintenance date: {machine.next_maintenance_date}\n"
        f"Days until due: {diff_days:.1f}\n"
        "\n"
        "Please schedule maintenance."
    )
    return subject, body


def check_upcoming_maintenance(
    store: JsonStore,
    notifier: Notifier,
    lookahead_days: float = 7.0,
    now: Optional[datetime] = None,
) -> List[str]:
    """
    One reminder sweep over all machines. Overdue machines (negative days)
    fall inside the window as well. Returns the ids of reminded machines.
    """
    now = now or utcnow()
    reminded: List[str] = []

    for machine in store.list_machines():
        if not machine.next_maintenance_date:
            continue
        try:
            due = parse_timestamp(machine.next_maintenance_date)
        except (ValueError, OverflowError):
            log.warning(
                "maintenance_date_unparseable_skipping",
                extra={"machine_id": machine.id, "next_maintenance_date": machine.next_maintenance_date},
            )
            continue

        diff_days = days_until(due, now)
        if diff_days > lookahead_days:
            continue
        if not reminder_gap_elapsed(machine.last_maintenance_reminder_sent, now):
            continue

        try:
            store.record_maintenance_reminder(machine.id, now, persist=False)
        except NotFound:
            log.info("machine_deleted_during_sweep_skipping", extra={"machine_id": machine.id})
            continue

        subject, body = format_maintenance_reminder(machine, diff_days)
        notifier.send(subject, body)
        reminded.append(machine.id)
        log.info("maintenance_reminder_sent", extra={"machine_id": machine.id, "days_until_due": round(diff_days, 1)})

    store.save()
    return reminded


class MaintenanceReminderLoop:
    """Background task running a reminder sweep every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        store: JsonStore,
        notifier: Notifier,
        interval_seconds: float = 60.0,
        lookahead_days: float = 7.0,
    ):
        self._store = store
        self._notifier = notifier
        self._interval = interval_seconds
        self._lookahead_days = lookahead_days
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                # The sweep may block on SMTP, keep it off the event loop.
                await asyncio.to_thread(
                    check_upcoming_maintenance, self._store, self._notifier, self._lookahead_days
                )
            except Exception:  # noqa: BLE001 (a failed sweep must not end the loop)
                log.exception("maintenance_sweep_failed")

    def start(self) -> None:
        """Must be called from a running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        log.info("maintenance_loop_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        log.info("maintenance_loop_stopped")
