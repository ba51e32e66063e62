from __future__ import annotations

import json
import random
import string
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError as SchemaError

from api.schemas import Machine, Vital
from shared.errors import NotFound, PersistenceError, ValidationError
from shared.logging import get_logger

log = get_logger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_ID_ALPHABET[rem])
    return "".join(reversed(digits)) or "0"


def generate_id() -> str:
    """Millisecond clock in base 36 followed by six random base-36 characters."""
    return _base36(int(time.time() * 1000)) + "".join(random.choices(_ID_ALPHABET, k=6))


class JsonStore:
    """
    In-memory mirror of a single JSON document ``{"machines": [...], "vitals": [...]}``.

    Every mutation rewrites the whole file unless the caller passes
    ``persist=False`` and calls ``save()`` itself. One re-entrant lock
    serializes the API worker threads and the reminder sweep.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = threading.RLock()
        self._machines: List[Machine] = []
        self._vitals: List[Vital] = []

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator["JsonStore"]:
        """Hold the store lock across several calls so they apply as one step."""
        with self._lock:
            yield self

    def _read(self) -> tuple[List[Machine], List[Vital]]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            machines = [Machine.model_validate(m) for m in raw.get("machines", [])]
            vitals = [Vital.model_validate(v) for v in raw.get("vitals", [])]
        except (OSError, ValueError, AttributeError, TypeError) as e:
            raise PersistenceError(f"cannot read {self._path}: {e}") from e
        return machines, vitals

    def load(self) -> None:
        with self._lock:
            if not self._path.exists():
                log.info("store_file_missing_starting_empty", extra={"db_file": str(self._path)})
                self._machines, self._vitals = [], []
                return
            try:
                self._machines, self._vitals = self._read()
            except PersistenceError as e:
                log.warning("store_load_failed_starting_empty", extra={"error": e.message})
                self._machines, self._vitals = [], []
                return
            log.info(
                "store_loaded",
                extra={"machines": len(self._machines), "vitals": len(self._vitals)},
            )

    def save(self) -> None:
        with self._lock:
            doc = {
                "machines": [m.model_dump(by_alias=True, mode="json") for m in self._machines],
                "vitals": [v.model_dump(by_alias=True, mode="json") for v in self._vitals],
            }
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8")

    # Machines

    def list_machines(self) -> List[Machine]:
        with self._lock:
            return list(self._machines)

    def machine_count(self) -> int:
        with self._lock:
            return len(self._machines)

    def _index_of(self, machine_id: str) -> int:
        for idx, machine in enumerate(self._machines):
            if machine.id == machine_id:
                return idx
        raise NotFound("Machine", machine_id)

    def get_machine(self, machine_id: str) -> Machine:
        with self._lock:
            return self._machines[self._index_of(machine_id)]

    def add_machine(self, machine: Machine, *, persist: bool = True) -> Machine:
        with self._lock:
            self._machines.append(machine)
            if persist:
                self.save()
            return machine

    def update_machine(self, machine_id: str, changes: Dict[str, Any], *, persist: bool = True) -> Machine:
        """Merge ``changes`` (snake_case keys) into the machine; the id never changes."""
        with self._lock:
            idx = self._index_of(machine_id)
            merged = {**self._machines[idx].model_dump(), **changes, "id": machine_id}
            try:
                updated = Machine.model_validate(merged)
            except SchemaError as e:
                raise ValidationError(f"Invalid machine update: {e.errors()[0]['msg']}") from e
            self._machines[idx] = updated
            if persist:
                self.save()
            return updated

    def record_abnormal_alert(self, machine_id: str, when: datetime, *, persist: bool = True) -> Machine:
        return self.update_machine(machine_id, {"last_abnormal_alert_sent": when}, persist=persist)

    def claim_abnormal_alert(self, machine_id: str, now: datetime, min_gap: timedelta) -> Optional[Machine]:
        """
        Stamp ``lastAbnormalAlertSent`` if more than ``min_gap`` passed since the
        previous alert, and return the stamped machine; None means another alert
        is still within the gap. Check and stamp happen under one lock hold.
        The stamp is not saved.
        """
        with self._lock:
            last_sent = self.get_machine(machine_id).last_abnormal_alert_sent
            if last_sent is not None and now - last_sent <= min_gap:
                return None
            return self.record_abnormal_alert(machine_id, now, persist=False)

    def record_maintenance_reminder(self, machine_id: str, when: datetime, *, persist: bool = True) -> Machine:
        return self.update_machine(machine_id, {"last_maintenance_reminder_sent": when}, persist=persist)

    def delete_machine(self, machine_id: str, *, persist: bool = True) -> None:
        with self._lock:
            idx = self._index_of(machine_id)
            del self._machines[idx]
            before = len(self._vitals)
            self._vitals = [v for v in self._vitals if v.machine_id != machine_id]
            log.info(
                "machine_deleted",
                extra={"machine_id": machine_id, "vitals_removed": before - len(self._vitals)},
            )
            if persist:
                self.save()

    # Vitals

    def list_vitals(self, machine_id: str, limit: int = 50) -> List[Vital]:
        """Vitals of one machine in ascending timestamp order, keeping only the newest ``limit``."""
        if limit <= 0:
            return []
        with self._lock:
            vitals = [v for v in self._vitals if v.machine_id == machine_id]
        vitals.sort(key=lambda v: v.timestamp)
        return vitals[-limit:]

    def add_vital(self, vital: Vital, *, persist: bool = True) -> Vital:
        with self._lock:
            self._index_of(vital.machine_id)
            self._vitals.append(vital)
            if persist:
                self.save()
            return vital
