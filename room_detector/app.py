from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .calibration import CalibrationController
from .config import Settings, get_settings
from .detector import RoomDetector
from .errors import CalibrationStateError, PersistenceError
from .storage import FingerprintStore, JsonFileKeyValueStore
from .wifi_scanner import WifiScanner

logger = logging.getLogger(__name__)


class CalibrationRequest(BaseModel):
    room: str


def build_detector(settings: Settings) -> RoomDetector:
    store = FingerprintStore(JsonFileKeyValueStore(settings.storage_path), key=settings.storage_key)
    return RoomDetector(
        store=store,
        scanner=WifiScanner(use_mock=settings.use_mock_scanner, timeout_s=settings.scan_timeout_s),
        controller=CalibrationController(store, settings.locations),
        scan_interval_s=settings.scan_interval_s,
    )


def create_app(settings: Optional[Settings] = None, detector: Optional[RoomDetector] = None) -> FastAPI:
    settings = settings or get_settings()
    detector = detector or build_detector(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        detector.store.load()
        detector.start()
        try:
            yield
        finally:
            await detector.stop()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.detector = detector
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CalibrationStateError)
    async def calibration_state_handler(request: Request, exc: CalibrationStateError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Persistence failure on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @app.get("/state")
    async def state() -> Dict[str, Any]:
        return detector.state().to_payload()

    @app.get("/rooms")
    async def rooms() -> list:
        return detector.store.rooms()

    @app.post("/calibration")
    async def start_calibration(body: CalibrationRequest) -> Dict[str, Any]:
        location = await detector.start_calibration(body.room)
        return {"room": detector.controller.target_room, "location": location}

    @app.post("/calibration/capture")
    async def capture_location() -> Dict[str, Any]:
        next_location = await detector.capture_location()
        return {"next_location": next_location, "done": next_location is None}

    @app.delete("/calibration")
    async def cancel_calibration() -> Dict[str, Any]:
        await detector.cancel_calibration()
        return {"ok": True}

    @app.delete("/rooms/{room:path}")
    async def delete_room(room: str) -> Dict[str, Any]:
        await detector.delete_room(room)
        return {"ok": True}

    @app.websocket("/ws")
    async def ws_state(ws: WebSocket) -> None:
        await ws.accept()
        paused = False
        try:
            while True:
                # Non-blocking receive for control messages
                try:
                    msg = await asyncio.wait_for(ws.receive_text(), timeout=0.01)
                    payload = json.loads(msg)
                    if isinstance(payload, dict) and payload.get("type") == "pause":
                        paused = bool(payload.get("value", False))
                except asyncio.TimeoutError:
                    pass
                except ValueError:
                    logger.debug("Ignoring malformed control message")

                if not paused:
                    packet = {"type": "snapshot", "timestamp": time.time(), **detector.state().to_payload()}
                    await ws.send_text(json.dumps(packet))
                await asyncio.sleep(detector.scan_interval_s)
        except WebSocketDisconnect:
            pass

    return app
