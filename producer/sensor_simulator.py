# ruff: noqa: E402, I001
from __future__ import annotations

import sys
from pathlib import Path

_repo_root = Path(__file__).resolve().parents[1]
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import random
import time
from typing import Dict, Optional

import requests

from api.schemas import Thresholds
from shared.logging import configure_logging, get_logger
from shared.settings import get_settings

log = get_logger(__name__)

# dimension -> (offset below threshold for the center, symmetric spread)
SIMULATION_PROFILE = {
    "temperature": (10.0, 8.0),
    "vibration": (3.0, 3.0),
    "pressure": (30.0, 20.0),
}

ANOMALY_PROBABILITY = 0.1


def generate_simulated_reading(thresholds: Thresholds, rng: Optional[random.Random] = None) -> Dict[str, float]:
    """
    Reading centered a little under each threshold, so it normally stays below it:
    center + uniform(-1, 1) * spread, rounded to one decimal.
    """
    rng = rng or random.Random()
    reading = {}
    for name, (offset, spread) in SIMULATION_PROFILE.items():
        center = getattr(thresholds, name) - offset
        reading[name] = round(center + (rng.random() * 2 - 1) * spread, 1)
    return reading


def inject_anomaly(reading: Dict[str, float], thresholds: Thresholds, rng: Optional[random.Random] = None) -> str:
    """Push one random dimension above its threshold. Returns the dimension name."""
    rng = rng or random.Random()
    name = rng.choice(list(SIMULATION_PROFILE))
    reading[name] = round(getattr(thresholds, name) * rng.uniform(1.05, 1.3), 1)
    return name


def main():
    settings = get_settings()
    configure_logging(service_name="producer", level=settings.LOG_LEVEL)
    base_url = f"{settings.API_BASE_URL.rstrip('/')}{settings.API_PREFIX}"
    session = requests.Session()

    log.info("producer_started", extra={"api_base_url": base_url, "interval_s": settings.SIMULATOR_INTERVAL_SECONDS})

    try:
        while True:
            try:
                r = session.get(f"{base_url}/machines", timeout=10)
                r.raise_for_status()
                machines = r.json()
            except requests.RequestException as e:
                log.warning("machine_list_failed", extra={"error": str(e)})
                machines = []

            for machine in machines:
                thresholds = Thresholds.model_validate(machine.get("thresholds") or {})
                reading = generate_simulated_reading(thresholds)
                if random.random() < ANOMALY_PROBABILITY:
                    reading["anomalyType"] = inject_anomaly(reading, thresholds)

                try:
                    r = session.post(f"{base_url}/machines/{machine['id']}/vitals", json=reading, timeout=10)
                    r.raise_for_status()
                except requests.RequestException as e:
                    log.warning("vital_post_failed", extra={"machine_id": machine["id"], "error": str(e)})
                    continue

                if r.json().get("abnormal"):
                    log.info("sent_abnormal_vital", extra={"machine_id": machine["id"], "reading": reading})
                else:
                    log.info("sent_vital", extra={"machine_id": machine["id"], "reading": reading})

            time.sleep(settings.SIMULATOR_INTERVAL_SECONDS)

    except KeyboardInterrupt:
        log.info("producer_stopping_keyboard_interrupt")
    finally:
        session.close()


if __name__ == "__main__":
    main()
