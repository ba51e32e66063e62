from typing import List, Optional
import sys
from pathlib import Path

_repo_root = Path(__file__).resolve().parents[1]
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.db import JsonStore, generate_id
from api.schemas import (
    Health,
    Machine,
    MachineCreate,
    MachineUpdate,
    Thresholds,
    Vital,
    VitalCreate,
    VitalIngestResult,
)
from alerting.alerts import AbnormalAlerter
from alerting.notifier import Notifier, build_notifier
from alerting.reminders import MaintenanceReminderLoop
from producer.sensor_simulator import generate_simulated_reading

from shared.errors import MonitorError, ValidationError
from shared.logging import configure_logging, get_logger
from shared.settings import get_settings
from shared.timeutil import utcnow


settings = get_settings()
configure_logging(service_name="api", level=settings.LOG_LEVEL)
log = get_logger(__name__)

_store: Optional[JsonStore] = None
_notifier: Optional[Notifier] = None
_reminder_loop: Optional[MaintenanceReminderLoop] = None


def get_store() -> JsonStore:
    global _store
    if _store is None:
        _store = JsonStore(get_settings().DB_FILE)
        _store.load()
    return _store


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        _notifier = build_notifier(get_settings())
    return _notifier


def get_alerter(
    store: JsonStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
) -> AbnormalAlerter:
    return AbnormalAlerter(store, notifier, min_gap_minutes=get_settings().ABNORMAL_ALERT_MIN_GAP_MINUTES)


app = FastAPI(title="Maintenance Monitor API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MonitorError)
async def monitor_error_handler(request: Request, exc: MonitorError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.on_event("startup")
async def startup_event():
    global _reminder_loop
    log.info("starting", extra={"db_file": settings.DB_FILE})
    _reminder_loop = MaintenanceReminderLoop(
        get_store(),
        get_notifier(),
        interval_seconds=settings.MAINTENANCE_CHECK_INTERVAL_SECONDS,
        lookahead_days=settings.MAINTENANCE_LOOKAHEAD_DAYS,
    )
    _reminder_loop.start()


@app.on_event("shutdown")
async def shutdown_event():
    log.info("shutting_down")
    if _reminder_loop is not None:
        await _reminder_loop.stop()


router = APIRouter(prefix=settings.API_PREFIX)


@router.get("/health", response_model=Health)
def health(store: JsonStore = Depends(get_store)):
    return Health(machine_count=store.machine_count())


@router.get("/machines", response_model=List[Machine])
def list_machines(store: JsonStore = Depends(get_store)):
    return store.list_machines()


@router.post("/machines", response_model=Machine, status_code=201)
def create_machine(payload: MachineCreate, store: JsonStore = Depends(get_store)):
    if not payload.name or not payload.next_maintenance_date:
        raise ValidationError("name and nextMaintenanceDate are required")

    machine = Machine(
        id=generate_id(),
        name=payload.name,
        code=payload.code or "",
        location=payload.location or "",
        next_maintenance_date=payload.next_maintenance_date,
        responsible_email=payload.responsible_email or "",
        thresholds=payload.thresholds or Thresholds(),
        created_at=utcnow(),
    )
    store.add_machine(machine)
    log.info("machine_created", extra={"machine_id": machine.id, "machine_name": machine.name})
    return machine


@router.put("/machines/{machine_id}", response_model=Machine)
def update_machine(machine_id: str, payload: MachineUpdate, store: JsonStore = Depends(get_store)):
    return store.update_machine(machine_id, payload.model_dump(exclude_unset=True))


@router.delete("/machines/{machine_id}", status_code=204)
def delete_machine(machine_id: str, store: JsonStore = Depends(get_store)):
    store.delete_machine(machine_id)
    return Response(status_code=204)


@router.get("/machines/{machine_id}/vitals", response_model=List[Vital])
def list_vitals(machine_id: str, limit: int = 50, store: JsonStore = Depends(get_store)):
    return store.list_vitals(machine_id, limit=limit)


@router.post("/machines/{machine_id}/vitals", response_model=VitalIngestResult, status_code=201)
def append_vital(
    machine_id: str,
    payload: VitalCreate,
    alerter: AbnormalAlerter = Depends(get_alerter),
):
    vital = Vital(
        id=generate_id(),
        machine_id=machine_id,
        temperature=payload.temperature,
        vibration=payload.vibration,
        pressure=payload.pressure,
        timestamp=payload.timestamp or utcnow(),
    )
    evaluation = alerter.ingest(machine_id, vital)
    return VitalIngestResult(vital=vital, abnormal=evaluation.abnormal)


@router.post("/machines/{machine_id}/vitals/simulate", response_model=Vital, status_code=201)
def simulate_vital(machine_id: str, store: JsonStore = Depends(get_store)):
    machine = store.get_machine(machine_id)
    vital = Vital(
        id=generate_id(),
        machine_id=machine_id,
        timestamp=utcnow(),
        **generate_simulated_reading(machine.thresholds),
    )
    return store.add_vital(vital)


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
