"""
FastAPI server for Fleet Replay.
Exposes the live session read-only, the playback controls, and a
WebSocket feed pushed after every tick.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from fleet_replay.server.data.data_source import DataFetchError
from fleet_replay.server.replay.replay_engine import SimulationSession
from fleet_replay.server.replay.session import SessionManager
from fleet_replay.shared.protocol import TripEvent, format_timestamp

logger = logging.getLogger(__name__)


class SpeedUpdate(BaseModel):
    speed: float = Field(..., gt=0)


class PlaybackState(BaseModel):
    is_playing: bool
    simulation_speed: float
    current_time: str


# Global references (set during app creation)
_session_manager: Optional[SessionManager] = None
_connected_websockets: List[WebSocket] = []


def create_app(session_manager: SessionManager) -> FastAPI:
    """Create and configure the FastAPI application."""
    global _session_manager

    _session_manager = session_manager
    session_manager.add_tick_hook(broadcast_tick)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("API server starting up")
        try:
            await session_manager.start()
        except DataFetchError as e:
            logger.error(f"Could not load initial dataset: {e}")

        yield

        # Shutdown
        await session_manager.shutdown()
        logger.info("API server shutting down")

    app = FastAPI(
        title="Fleet Replay API",
        description="Replay of recorded fleet telemetry against tracked trips",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)

    return app


def _playback_state() -> PlaybackState:
    session = _session_manager.session
    return PlaybackState(
        is_playing=session.is_playing,
        simulation_speed=session.speed,
        current_time=format_timestamp(session.virtual_clock),
    )


def register_routes(app: FastAPI):
    """Register all API routes."""

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ==================== Session State ====================

    @app.get("/api/state")
    async def get_state():
        """Full presentation snapshot of the session."""
        return _session_manager.snapshot()

    @app.get("/api/trips")
    async def get_trips():
        return [t.to_dict() for t in _session_manager.session.trips]

    @app.get("/api/trips/{trip_id}")
    async def get_trip(trip_id: str):
        trip = _session_manager.session.get_trip(trip_id)
        if trip is None:
            raise HTTPException(status_code=404, detail="Trip not found")
        return trip.to_dict()

    @app.get("/api/events")
    async def get_events(limit: Optional[int] = None):
        """Applied events, most recent last."""
        events = _session_manager.session.applied_events
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return [e.to_dict() for e in events]

    @app.get("/api/fleet-metrics")
    async def get_fleet_metrics():
        return _session_manager.fleet_metrics().to_dict()

    # ==================== Playback Controls ====================

    @app.post("/api/playback/toggle", response_model=PlaybackState)
    async def toggle_playback():
        await _session_manager.toggle()
        return _playback_state()

    @app.post("/api/playback/play", response_model=PlaybackState)
    async def play():
        await _session_manager.play()
        return _playback_state()

    @app.post("/api/playback/pause", response_model=PlaybackState)
    async def pause():
        await _session_manager.pause()
        return _playback_state()

    @app.post("/api/playback/speed", response_model=PlaybackState)
    async def set_speed(update: SpeedUpdate):
        try:
            _session_manager.set_speed(update.speed)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return _playback_state()

    @app.post("/api/reset")
    async def reset():
        try:
            await _session_manager.reset()
        except DataFetchError as e:
            logger.error(f"Reset failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))
        return _session_manager.snapshot()

    # ==================== WebSocket ====================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        _connected_websockets.append(websocket)

        try:
            await websocket.send_json({"type": "state", "data": _session_manager.snapshot()})
            while True:
                message = await websocket.receive_text()
                if message == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            pass
        finally:
            if websocket in _connected_websockets:
                _connected_websockets.remove(websocket)


async def broadcast_tick(session: SimulationSession, applied: List[TripEvent]):
    """Push the post-tick snapshot to all connected WebSocket clients."""
    if not _connected_websockets or _session_manager is None:
        return

    message = {
        "type": "tick",
        "applied": [e.to_dict() for e in applied],
        "data": _session_manager.snapshot(),
    }

    disconnected = []
    for ws in _connected_websockets.copy():
        try:
            await ws.send_json(message)
        except Exception as e:
            logger.debug(f"Dropping WebSocket client: {e}")
            disconnected.append(ws)

    for ws in disconnected:
        if ws in _connected_websockets:
            _connected_websockets.remove(ws)
