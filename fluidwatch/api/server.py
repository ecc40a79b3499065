"""
FastAPI backend: patients, balance events, balance/KDIGO evaluation, WebSocket alerts.
"""

import asyncio
import logging
import queue
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..alerts import AlertManager
from ..errors import PatientNotFound, UpstreamUnavailable
from ..events.aggregator import INTAKE_CATEGORIES, OUTPUT_CATEGORIES, Direction, Origin
from ..ingest import SensorSync
from ..service import BalanceService

logger = logging.getLogger("fluidwatch.api")

_ws_connections: list = []
_alert_queue: queue.Queue = queue.Queue()


def broadcast_alert(data: dict) -> None:
    """Called from sync code (AlertManager); enqueue for async broadcast."""
    _alert_queue.put(data)


async def _alert_broadcast_worker() -> None:
    """Drain alert queue and send to all WebSocket clients."""
    while True:
        try:
            data = _alert_queue.get_nowait()
            dead = []
            for ws in _ws_connections:
                try:
                    await ws.send_json(data)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in _ws_connections:
                    _ws_connections.remove(ws)
        except queue.Empty:
            pass
        await asyncio.sleep(0.05)


# --- request schemas ---

class PatientCreate(BaseModel):
    name: str = Field(..., min_length=1)
    age_years: Optional[int] = Field(None, ge=0, le=130)
    weight_kg: Optional[float] = Field(None, ge=0, le=400)
    height_cm: Optional[float] = Field(None, ge=0, le=260)
    device_id: Optional[int] = None


class PatientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    age_years: Optional[int] = Field(None, ge=0, le=130)
    weight_kg: Optional[float] = Field(None, ge=0, le=400)
    height_cm: Optional[float] = Field(None, ge=0, le=260)
    device_id: Optional[int] = None
    active: Optional[bool] = None


class EventCreate(BaseModel):
    direction: Direction
    volume_ml: Optional[float] = Field(None, ge=0)
    weight_g: Optional[float] = Field(None, ge=0, description="Weighed output; 1 g counts as 1 mL")
    origin: Origin = Origin.MANUAL
    category: Optional[str] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


class DeviceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    channel_id: str = Field(..., min_length=1)
    api_key: Optional[str] = None
    active: bool = True


def _event_dict(ev) -> dict:
    return {
        "id": ev.id,
        "patient_id": ev.patient_id,
        "direction": ev.direction.value,
        "origin": ev.origin.value,
        "category": ev.category,
        "volume_ml": ev.volume_ml,
        "entry_id": ev.entry_id,
        "timestamp": ev.timestamp.isoformat(),
    }


def create_app(
    service: BalanceService,
    sensor_sync: Optional[SensorSync] = None,
    alert_manager: Optional[AlertManager] = None,
) -> FastAPI:
    app = FastAPI(title="FluidWatch API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    repo = service.repository

    @app.on_event("startup")
    async def startup():
        asyncio.create_task(_alert_broadcast_worker())

    @app.exception_handler(PatientNotFound)
    async def patient_not_found(request: Request, exc: PatientNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(UpstreamUnavailable)
    async def upstream_unavailable(request: Request, exc: UpstreamUnavailable):
        return JSONResponse(status_code=503, content={"detail": str(exc), "retryable": True})

    @app.get("/health")
    async def health():
        """Health check."""
        return {"status": "ok", "service": "FluidWatch"}

    # ---- patients ----

    @app.post("/patients", status_code=201)
    def create_patient(body: PatientCreate):
        patient = repo.create_patient(
            name=body.name,
            age_years=body.age_years,
            weight_kg=body.weight_kg,
            height_cm=body.height_cm,
            device_id=body.device_id,
        )
        return patient.to_dict()

    @app.get("/patients")
    def list_patients():
        return [p.to_dict() for p in repo.list_patients()]

    @app.get("/patients/{patient_id}")
    def get_patient(patient_id: int):
        return repo.get_patient(patient_id).to_dict()

    @app.patch("/patients/{patient_id}")
    def update_patient(patient_id: int, body: PatientUpdate):
        fields = body.model_dump(exclude_unset=True)
        return repo.update_patient(patient_id, **fields).to_dict()

    @app.delete("/patients/{patient_id}", status_code=204)
    def delete_patient(patient_id: int):
        repo.delete_patient(patient_id)

    # ---- events ----

    @app.post("/patients/{patient_id}/events", status_code=201)
    def add_event(patient_id: int, body: EventCreate):
        if body.weight_g is not None and body.direction is not Direction.OUTPUT:
            raise HTTPException(status_code=422, detail="weight_g only applies to output events")
        volume = body.weight_g if body.weight_g else body.volume_ml
        if volume is None:
            raise HTTPException(status_code=422, detail="volume_ml or weight_g is required")
        known = INTAKE_CATEGORIES if body.direction is Direction.INTAKE else OUTPUT_CATEGORIES
        if body.origin is Origin.MANUAL and body.category and body.category not in known:
            raise HTTPException(status_code=422, detail=f"unknown {body.direction.value} category: {body.category}")
        ev = repo.add_event(
            patient_id,
            body.direction,
            volume,
            origin=body.origin,
            timestamp=body.timestamp,
            category=body.category,
            weight_g=body.weight_g,
            notes=body.notes,
        )
        return _event_dict(ev)

    @app.get("/patients/{patient_id}/events")
    def list_events(patient_id: int):
        repo.get_patient(patient_id)
        return [_event_dict(ev) for ev in repo.list_events(patient_id)]

    # ---- evaluation ----

    @app.get("/patients/{patient_id}/balance")
    def patient_balance(patient_id: int):
        """Balance snapshot, risk tier and KDIGO stage (the stage is persisted)."""
        return service.evaluate(patient_id).to_dict()

    @app.get("/patients/{patient_id}/trend")
    def patient_trend(patient_id: int, limit: Optional[int] = 20):
        return [
            {
                "timestamp": p.timestamp.isoformat(),
                "direction": p.direction.value,
                "volume_ml": p.volume_ml,
                "cumulative_balance_ml": p.cumulative_balance_ml,
            }
            for p in service.trend(patient_id, limit=limit)
        ]

    @app.post("/patients/{patient_id}/reset")
    def reset_balance(patient_id: int):
        deleted = service.reset_balance(patient_id)
        return {"patient_id": patient_id, "deleted_events": deleted}

    # ---- devices & sensor sync ----

    @app.post("/devices", status_code=201)
    def create_device(body: DeviceCreate):
        device = repo.create_device(
            name=body.name, channel_id=body.channel_id, api_key=body.api_key, active=body.active
        )
        return {"id": device.id, "name": device.name, "channel_id": device.channel_id, "active": device.active}

    @app.post("/sync")
    def sync_sensors():
        if sensor_sync is None:
            raise HTTPException(status_code=501, detail="sensor sync not configured")
        return {"inserted": sensor_sync.sync_devices()}

    @app.get("/alerts/recent")
    def recent_alerts(limit: int = 50):
        if alert_manager is None:
            return []
        return alert_manager.get_recent(limit)

    @app.websocket("/alerts")
    async def alerts_websocket(websocket: WebSocket):
        await websocket.accept()
        _ws_connections.append(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            if websocket in _ws_connections:
                _ws_connections.remove(websocket)

    return app
