"""
FastAPI app: control surface for a multi-speaker recording.

WebSocket /ws/capture/{user}: the voice layer opens one connection per speaking user and
sends that user's raw PCM (s16le, 48kHz, stereo) as binary messages of any size.
Connecting starts the user's capture (join); disconnecting stops it (leave).
Server sends JSON: { "type": "capture" | "error", ... }.

HTTP: stop everyone, finalize (stop + stitch aligned tracks), status, health.
"""
from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from voicetracks.capture.source import PCMSource
from voicetracks.config import get_settings
from voicetracks.errors import AlreadyCapturing, EncoderSpawnFailed, NotCapturing, SessionsStillActive
from voicetracks.logging_setup import setup_logging
from voicetracks.registry import StreamRegistry
from voicetracks.schemas.recording import (
    CaptureReportOut,
    FinalizeResponse,
    StatusResponse,
    StitchResultOut,
    StopResponse,
    UserStatus,
)

logger = logging.getLogger(__name__)

# Set in lifespan so the WebSocket route can reach the registry without Request
_current_app: FastAPI | None = None


def get_registry(app: FastAPI | None = None) -> StreamRegistry:
    a = app or _current_app
    if a is None:
        raise RuntimeError("App not initialized (lifespan not run?)")
    return a.state.registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _current_app
    settings = get_settings()
    setup_logging(settings)
    _current_app = app
    app.state.registry = StreamRegistry(settings)
    yield
    # Shutdown: release every encoder so fragment files are complete on disk
    reports = await app.state.registry.stop_all()
    if reports:
        logger.info("Stopped %d capture(s) on shutdown; fragments kept unstitched", len(reports))
    _current_app = None


app = FastAPI(
    title="Per-speaker voice recorder",
    description="Per-user capture with post-session timeline alignment",
    lifespan=lifespan,
)


@app.websocket("/ws/capture/{user}")
async def websocket_capture(websocket: WebSocket, user: str) -> None:
    """One connection = one capture of user. Binary messages are PCM; text messages are ignored."""
    await websocket.accept()
    registry = get_registry()
    source = PCMSource()
    try:
        session = await registry.start_capture(user, source)
    except (AlreadyCapturing, EncoderSpawnFailed) as e:
        logger.warning("Capture for %s not started: %s", user, e.message)
        await websocket.send_text(json.dumps({"type": "error", "user": user, "error": e.message}))
        await websocket.close(code=1008 if isinstance(e, AlreadyCapturing) else 1011)
        return

    await websocket.send_text(
        json.dumps({"type": "capture", "user": user, "start_ms": session.fragment.start_ms})
    )
    try:
        while True:
            msg = await websocket.receive()
            if msg.get("type") == "websocket.disconnect":
                break
            data = msg.get("bytes")
            if data:
                source.feed(data)
    except WebSocketDisconnect:
        pass
    finally:
        source.end()
        report = None
        # The HTTP API may have stopped this capture already, and a new connection may own the user now
        if registry.session(user) is session:
            try:
                report = await registry.stop_capture(user)
            except NotCapturing:
                pass
        if report is not None and not report.success:
            logger.warning("Capture for %s ended with error: %s", user, report.error)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/recording/status", response_model=StatusResponse)
async def recording_status() -> StatusResponse:
    registry = get_registry()
    fragments = registry.all_fragments()
    users = sorted(set(fragments) | set(registry.active_users()))
    return StatusResponse(
        session_clock_ms=registry.session_clock(),
        users=[
            UserStatus(user=u, capturing=registry.is_capturing(u), fragments=len(fragments.get(u, [])))
            for u in users
        ],
    )


@app.post("/api/recording/stop", response_model=StopResponse)
async def stop_recording() -> StopResponse:
    """Stop every active capture. Fragments are kept until finalize."""
    reports = await get_registry().stop_all()
    return StopResponse(reports=[CaptureReportOut.from_report(r) for r in reports])


@app.post("/api/recording/finalize", response_model=FinalizeResponse)
async def finalize_recording() -> FinalizeResponse:
    """
    Stop every capture, then stitch one aligned track per user and clear the recording.
    Per-user failures are reported in the body; the request itself succeeds.
    """
    registry = get_registry()
    stopped = await registry.stop_all()
    try:
        results = await registry.finalize()
    except SessionsStillActive as e:
        # A user joined between stop_all and finalize
        raise HTTPException(status_code=409, detail=e.message)
    return FinalizeResponse(
        stopped=[CaptureReportOut.from_report(r) for r in stopped],
        tracks=[StitchResultOut.from_result(r) for r in results],
    )
