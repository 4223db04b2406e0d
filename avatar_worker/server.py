import json
from contextlib import asynccontextmanager
from typing import Annotated, List, Literal, Optional, Union
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from avatar_worker import config
from avatar_worker.app.drain_loop import run_drain
from avatar_worker.app.models import RunReport, WorkKind, WorkUnitStore
from avatar_worker.app.sequencer import SessionRegistry
from avatar_worker.errors import SessionAlreadyActiveError
from avatar_worker.infra.redis_infra import RedisClient, RedisWorkUnitStore
from avatar_worker.service.drain_scheduler import DrainScheduler
from avatar_worker.utils import get_logger

logger = get_logger(__name__)

SESSION_CONFLICT_CLOSE_CODE = 4409


class DrainDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(alias="subjectId")
    success: bool
    message: str


class DrainResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    processed_count: int = Field(alias="processedCount")
    failed_count: int = Field(alias="failedCount")
    details: List[DrainDetail]
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str


class TypedEvent(BaseModel):
    kind: Literal["typed"]
    text: str


class TranscribedEvent(BaseModel):
    kind: Literal["transcribed"]
    index: int
    text: str


SessionEvent = TypeAdapter(Annotated[Union[TypedEvent, TranscribedEvent], Field(discriminator="kind")])

session_registry = SessionRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with RedisClient() as client:
        store = RedisWorkUnitStore(client)
        app.state.store = store
        await store.recover_stale_claims()

        scheduler = None
        if config.DRAIN_SCHEDULE_INTERVAL > 0:
            scheduler = DrainScheduler(store, config.DRAIN_SCHEDULE_INTERVAL, timeout=config.DRAIN_TIMEOUT_SECONDS)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()


app = FastAPI(lifespan=lifespan)


def get_store(request: Request) -> WorkUnitStore:
    return request.app.state.store


def get_session_registry() -> SessionRegistry:
    return session_registry


def _drain_response(report: RunReport, done_message: str, error_message: str) -> JSONResponse:
    body = DrainResponse(
        message=error_message if report.run_failed else done_message,
        **report.to_dict(),
    )
    return JSONResponse(
        content=body.model_dump(by_alias=True, exclude_none=True),
        status_code=500 if report.run_failed else 200,
    )


@app.get("/api/thumb", response_model=DrainResponse)
async def drain_thumbnails(store: WorkUnitStore = Depends(get_store)):
    logger.info("Running thumb API endpoint - processing thumbnail queue")
    report = await run_drain(store, WorkKind.THUMBNAIL_COUNT, timeout=config.DRAIN_TIMEOUT_SECONDS)
    return _drain_response(report, "Thumbnail processing complete", "Error processing thumbnail queue")


@app.get("/api/serve_time", response_model=DrainResponse)
async def drain_serve_times(store: WorkUnitStore = Depends(get_store)):
    logger.info("Running serve_time API endpoint - flushing avatar serve times")
    report = await run_drain(store, WorkKind.SERVE_TIME, timeout=config.DRAIN_TIMEOUT_SECONDS)
    return _drain_response(report, "Serve time flush complete", "Error flushing avatar serve times")


@app.websocket("/ws/session/{participant}")
async def live_session(
    websocket: WebSocket,
    participant: str,
    registry: SessionRegistry = Depends(get_session_registry),
):
    await websocket.accept()
    outbox = []
    try:
        sequencer = registry.open(participant, listener=outbox.append)
    except SessionAlreadyActiveError as e:
        logger.warning(str(e))
        await websocket.close(code=SESSION_CONFLICT_CLOSE_CODE, reason=str(e))
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            try:
                raw = message.get("text")
                if raw is None:
                    raise ValueError("binary frames are not session events")
                event = SessionEvent.validate_python(json.loads(raw))
            except (ValueError, ValidationError) as e:
                logger.warning(f"Rejected live session event from {participant}: {e}")
                await websocket.send_json({"kind": "error", "message": "Malformed session event"})
                continue

            if isinstance(event, TranscribedEvent):
                sequencer.submit_transcribed(event.index, event.text)
            else:
                sequencer.submit_typed(event.text)

            while outbox:
                await websocket.send_json(outbox.pop(0).to_dict())
    except WebSocketDisconnect:
        logger.info(f"Live session transport closed for {participant}")
    finally:
        registry.close(participant)


@app.get("/health", response_model=HealthResponse)
def health():
    return {"status": "ok"}
