from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from api.db import JsonStore
from api.schemas import Machine, Thresholds, Vital
from alerting.notifier import Notifier
from shared.logging import get_logger
from shared.timeutil import utcnow

log = get_logger(__name__)

# (field, label, unit), in the order reasons are reported.
DIMENSIONS = (
    ("temperature", "Temperature", "°C"),
    ("vibration", "Vibration", "mm/s"),
    ("pressure", "Pressure", "bar"),
)


def _fmt(value: float) -> str:
    # Full precision; whole numbers without the trailing ".0".
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


@dataclass
class Evaluation:
    abnormal: bool = False
    reasons: List[str] = field(default_factory=list)


def evaluate_vital(vital: Vital, thresholds: Thresholds) -> Evaluation:
    """A dimension is breached when its reading is present and strictly above its ceiling."""
    result = Evaluation()
    for name, label, unit in DIMENSIONS:
        value = getattr(vital, name)
        limit = getattr(thresholds, name)
        if value is not None and value > limit:
            result.abnormal = True
            result.reasons.append(f"{label} {_fmt(value)}{unit} > {_fmt(limit)}{unit}")
    return result


def format_abnormal_alert(machine: Machine, vital: Vital, reasons: List[str]) -> tuple[str, str]:
    def reading(value: Optional[float]) -> str:
        return "-" if value is None else _fmt(value)

    subject = f"⚠️ Abnormal condition detected on machine: {machine.name}"
    body = (
        f"Machine: {machine.name}\n"
        f"Code: {machine.code or '-'}\n"
        f"Location: {machine.location or '-'}\n"
        f"Time: {vital.timestamp.isoformat()}\n"
        "\n"
        "Reasons:\n"
        + "".join(f"- {r}\n" for r in reasons)
        + "\n"
        "Latest reading:\n"
        f"- Temperature: {reading(vital.temperature)} °C\n"
        f"- Vibration: {reading(vital.vibration)} mm/s\n"
        f"- Pressure: {reading(vital.pressure)} bar\n"
    )
    return subject, body


class AbnormalAlerter:
    """
    Checks each ingested vital against its machine's thresholds and emails
    about breaches, at most once per ``min_gap_minutes`` per machine.

    The gap check and the ``lastAbnormalAlertSent`` stamp happen under the
    store lock; the email goes out after the lock is released.
    """

    def __init__(self, store: JsonStore, notifier: Notifier, min_gap_minutes: float = 30.0):
        self._store = store
        self._notifier = notifier
        self._min_gap = timedelta(minutes=min_gap_minutes)

    def _claim(self, machine: Machine, vital: Vital, now: datetime) -> tuple[Evaluation, Optional[Machine]]:
        evaluation = evaluate_vital(vital, machine.thresholds)
        if not evaluation.abnormal:
            return evaluation, None
        claimed = self._store.claim_abnormal_alert(machine.id, now, self._min_gap)
        if claimed is None:
            log.info(
                "abnormal_alert_gap_active_skipping",
                extra={"machine_id": machine.id, "last_sent": machine.last_abnormal_alert_sent},
            )
        return evaluation, claimed

    def _notify(self, machine: Machine, vital: Vital, evaluation: Evaluation) -> None:
        subject, body = format_abnormal_alert(machine, vital, evaluation.reasons)
        self._notifier.send(subject, body)
        log.info("abnormal_alert_sent", extra={"machine_id": machine.id, "reasons": evaluation.reasons})

    def process(self, machine: Machine, vital: Vital, now: Optional[datetime] = None) -> Evaluation:
        """Evaluate a vital that is already stored. The stamp is left unsaved."""
        evaluation, claimed = self._claim(machine, vital, now or utcnow())
        if claimed is not None:
            self._notify(claimed, vital, evaluation)
        return evaluation

    def ingest(self, machine_id: str, vital: Vital, now: Optional[datetime] = None) -> Evaluation:
        """Append ``vital``, evaluate it and save, as one step against concurrent requests."""
        now = now or utcnow()
        with self._store.transaction():
            machine = self._store.get_machine(machine_id)
            self._store.add_vital(vital, persist=False)
            evaluation, claimed = self._claim(machine, vital, now)
            self._store.save()
        if claimed is not None:
            self._notify(claimed, vital, evaluation)
        return evaluation
