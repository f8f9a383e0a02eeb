"""FastAPI gateway: uploads, transcription, files, payments, dashboard and the websocket chat."""

from __future__ import annotations

import asyncio
import mimetypes
import re
import time
import uuid
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from cognis.ai.orchestrator import AgentOrchestrator, AgentSettings
from cognis.core.types import FrameType
from cognis.log import bind_task, get_logger
from cognis.services.base import Service
from cognis.services.bus import MessageBus, map_bus_message
from cognis.services.observability import ObservabilityService
from cognis.services.payments.ledger import PaymentLedgerService
from cognis.services.payments.money import cents_to_dollars, policy_to_wire
from cognis.services.transcriber import NoopTranscriber, Transcriber

logger = get_logger(__name__)

STREAM_CHUNK_SIZE = 80
BUS_POLL_INTERVAL = 0.25
DEFAULT_AUDIT_LIMIT = 100
MAX_AUDIT_LIMIT = 1000

CORS_HEADERS = {
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Max-Age": "86400",
    "Vary": "Origin",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class WsInbound(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    client_id: Optional[str] = None
    content: Optional[str] = None
    msg_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WsOutbound(BaseModel):
    type: str
    content: Optional[str] = None
    chat_id: Optional[str] = None
    msg_id: Optional[str] = None
    id: Optional[str] = None
    message_id: Optional[str] = None
    is_typing: Optional[bool] = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def safe_filename(raw: Optional[str]) -> str:
    """Keep only the last path segment and replace anything outside ``[A-Za-z0-9._-]``."""
    normalized = (raw or "").replace("\\", "/").rsplit("/", 1)[-1]
    normalized = _UNSAFE_CHARS.sub("_", normalized)
    return normalized if normalized.strip() else "file.bin"


def is_allowed_origin(origin: str) -> bool:
    try:
        parsed = urlparse(origin)
    except ValueError:
        return False
    scheme = (parsed.scheme or "").lower()
    host = (parsed.hostname or "").lower()
    if scheme == "http" and host in ("localhost", "127.0.0.1"):
        return True
    return scheme == "https" and host == "cognis.local"


def chunk_text(text: str, size: int = STREAM_CHUNK_SIZE) -> list[str]:
    if not text or not text.strip():
        return []
    step = max(1, size)
    return [text[i:i + step] for i in range(0, len(text), step)]


def guess_content_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


class GatewayServer:
    """Holds the collaborators the HTTP and websocket routes need.

    ``app`` builds the FastAPI application. Background services passed in
    (e.g. the cron dispatcher) are started and stopped with the app lifespan,
    alongside the bus pump that broadcasts pending bus messages to every
    connected client.
    """

    def __init__(
        self,
        workspace: Path,
        transcriber: Optional[Transcriber] = None,
        orchestrator: Optional[AgentOrchestrator] = None,
        agent_settings: Optional[AgentSettings] = None,
        bus: Optional[MessageBus] = None,
        ws_token: str = "",
        payments: Optional[PaymentLedgerService] = None,
        observability: Optional[ObservabilityService] = None,
        services: Optional[list[Service]] = None,
        bus_poll_interval: float = BUS_POLL_INTERVAL,
        pump_bus: bool = True,
    ):
        self.workspace = Path(workspace).expanduser().resolve()
        self.uploads_dir = self.workspace / "uploads"
        self.temp_dir = self.workspace / ".cognis" / "tmp"
        self.transcriber = transcriber or NoopTranscriber()
        self.orchestrator = orchestrator
        self.agent_settings = agent_settings
        self.bus = bus
        self.ws_token = (ws_token or "").strip()
        self.payments = payments
        self.observability = observability
        self.services = list(services or [])
        self.bus_poll_interval = bus_poll_interval
        self.pump_bus = pump_bus
        self.clients: dict[str, WebSocket] = {}

    # -- lifecycle ----------------------------------------------------------

    @asynccontextmanager
    async def lifespan(self, _app: FastAPI):
        for service in self.services:
            await service.start()
        pump: Optional[asyncio.Task] = None
        if self.bus is not None and self.pump_bus:
            pump = asyncio.create_task(self._pump_bus())
        logger.info("gateway_started", workspace=str(self.workspace), services=len(self.services))
        try:
            yield
        finally:
            if pump is not None:
                pump.cancel()
                with suppress(asyncio.CancelledError):
                    await pump
            for service in reversed(self.services):
                try:
                    await service.stop()
                except Exception as e:
                    logger.warning("service_stop_failed", service=service.service_name, error=str(e))
            for client_id, websocket in list(self.clients.items()):
                with suppress(Exception):
                    await websocket.close()
                self.clients.pop(client_id, None)
            logger.info("gateway_stopped")

    async def _pump_bus(self) -> None:
        while True:
            message = self.bus.poll() if self.bus is not None else None
            if message is None:
                await asyncio.sleep(self.bus_poll_interval)
                continue
            frame = map_bus_message(message)
            await self._broadcast(WsOutbound(type=frame["type"], content=frame["content"]))

    async def _broadcast(self, frame: WsOutbound) -> None:
        for websocket in list(self.clients.values()):
            await self._send(websocket, frame)

    async def _send(self, websocket: WebSocket, frame: WsOutbound) -> None:
        try:
            await websocket.send_json(frame.to_wire())
        except Exception as e:
            logger.debug("ws_send_failed", frame_type=frame.type, error=str(e))

    def _record(self, event_type: str, attributes: dict[str, Any]) -> None:
        if self.observability is None:
            return
        try:
            self.observability.record(event_type, attributes)
        except Exception as e:
            logger.warning("audit_record_failed", event_type=event_type, error=str(e))

    # -- app ----------------------------------------------------------------

    def app(self) -> FastAPI:
        app = FastAPI(title="Cognis Gateway", lifespan=self.lifespan)
        self._install_cors(app)
        self._install_error_handlers(app)
        self._install_routes(app)
        app.add_api_websocket_route("/ws", self.websocket_endpoint)
        return app

    @staticmethod
    def _install_cors(app: FastAPI) -> None:
        @app.middleware("http")
        async def cors(request: Request, call_next):
            origin = request.headers.get("origin", "")
            allowed = bool(origin) and is_allowed_origin(origin)
            if request.method == "OPTIONS":
                response: Response = Response(status_code=204)
            else:
                response = await call_next(request)
            if allowed:
                response.headers["Access-Control-Allow-Origin"] = origin
                for key, value in CORS_HEADERS.items():
                    response.headers[key] = value
            return response

    @staticmethod
    def _install_error_handlers(app: FastAPI) -> None:
        @app.exception_handler(StarletteHTTPException)
        async def http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
            match exc.status_code:
                case 404:
                    error = "not_found"
                case 405:
                    error = "method_not_allowed"
                case _:
                    error = str(exc.detail or "error")
            return JSONResponse({"error": error}, status_code=exc.status_code)

        @app.exception_handler(Exception)
        async def internal_error(_request: Request, exc: Exception) -> JSONResponse:
            logger.error("gateway_request_failed", error=str(exc))
            return JSONResponse({"error": str(exc) or "internal_error"}, status_code=500)

    def _install_routes(self, app: FastAPI) -> None:
        app.add_api_route("/healthz", self.healthz, methods=["GET"])
        app.add_api_route("/upload", self.upload, methods=["POST"])
        app.add_api_route("/transcribe", self.transcribe, methods=["POST"])
        app.add_api_route("/files/{name:path}", self.files, methods=["GET"])
        app.add_api_route("/payments/policy", self.get_policy, methods=["GET"])
        app.add_api_route("/payments/policy", self.update_policy, methods=["PUT", "POST"])
        app.add_api_route("/payments/status", self.payments_status, methods=["GET"])
        app.add_api_route("/dashboard/summary", self.dashboard_summary, methods=["GET"])
        app.add_api_route("/audit/events", self.audit_events, methods=["GET"])

    # -- HTTP routes ----------------------------------------------------------

    async def healthz(self) -> dict[str, str]:
        return {"status": "ok"}

    async def upload(self, request: Request) -> JSONResponse:
        data, filename, content_type = await self._read_payload(request, "upload.bin")
        if not data:
            return JSONResponse({"error": "empty_payload"}, status_code=400)

        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        stored = f"{int(time.time() * 1000)}_{safe_filename(filename)}"
        (self.uploads_dir / stored).write_bytes(data)
        logger.info("file_uploaded", stored=stored, size=len(data))
        return JSONResponse({"path": f"uploads/{stored}", "url": f"/files/{stored}", "type": content_type})

    async def transcribe(self, request: Request) -> JSONResponse:
        data, filename, _ = await self._read_payload(request, "audio.webm")
        if not data:
            return JSONResponse({"error": "empty_payload"}, status_code=400)

        self.temp_dir.mkdir(parents=True, exist_ok=True)
        audio_path = self.temp_dir / f"{uuid.uuid4()}-{safe_filename(filename)}"
        audio_path.write_bytes(data)
        try:
            text = await self.transcriber.transcribe(audio_path)
            return JSONResponse({"text": text})
        except Exception as e:
            logger.warning("transcription_failed", error=str(e))
            return JSONResponse({"error": str(e)}, status_code=400)
        finally:
            audio_path.unlink(missing_ok=True)

    async def files(self, name: str) -> Response:
        filename = safe_filename(name)
        uploads = self.uploads_dir.resolve()
        target = (uploads / filename).resolve()
        if not target.is_relative_to(uploads) or not target.is_file():
            return JSONResponse({"error": "not_found"}, status_code=404)
        return Response(content=target.read_bytes(), media_type=guess_content_type(filename))

    async def get_policy(self) -> JSONResponse:
        if self.payments is None:
            return JSONResponse({"error": "payments_not_configured"}, status_code=503)
        return JSONResponse(policy_to_wire(self.payments.policy()))

    async def update_policy(self, request: Request) -> JSONResponse:
        if self.payments is None:
            return JSONResponse({"error": "payments_not_configured"}, status_code=503)
        raw = await request.body()
        try:
            body = await request.json() if raw.strip() else {}
        except ValueError:
            return JSONResponse({"error": "invalid_json"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "invalid_json"}, status_code=400)
        try:
            updated = self.payments.patch_policy(body)
        except (ValueError, ValidationError) as e:
            return JSONResponse({"error": str(e)}, status_code=400)
        return JSONResponse(policy_to_wire(updated))

    async def payments_status(self) -> JSONResponse:
        if self.payments is None:
            return JSONResponse({"error": "payments_not_configured"}, status_code=503)
        summary = self.payments.summary()
        return JSONResponse(
            {
                "reserved": cents_to_dollars(summary.reserved_cents),
                "captured": cents_to_dollars(summary.captured_cents),
                "daily_used": cents_to_dollars(summary.daily_used_cents),
                "monthly_used": cents_to_dollars(summary.monthly_used_cents),
                "available_daily": cents_to_dollars(summary.available_daily_cents),
                "available_monthly": cents_to_dollars(summary.available_monthly_cents),
                "transactions": summary.total_transactions,
            }
        )

    async def dashboard_summary(self) -> JSONResponse:
        if self.observability is None:
            return JSONResponse({"error": "observability_not_configured"}, status_code=503)
        return JSONResponse(self.observability.summary().model_dump())

    async def audit_events(self, request: Request) -> JSONResponse:
        if self.observability is None:
            return JSONResponse({"error": "observability_not_configured"}, status_code=503)
        try:
            limit = int(request.query_params.get("limit", ""))
            limit = max(1, min(MAX_AUDIT_LIMIT, limit))
        except ValueError:
            limit = DEFAULT_AUDIT_LIMIT
        events = self.observability.recent(limit)
        return JSONResponse({"events": [event.model_dump(mode="json") for event in events]})

    async def _read_payload(self, request: Request, fallback_name: str) -> tuple[bytes, str, str]:
        content_type = request.headers.get("content-type", "")
        if content_type.lower().startswith("multipart/form-data"):
            form = await request.form()
            item = form.get("file")
            if item is not None and not isinstance(item, str):
                filename = item.filename or fallback_name
                data = await item.read()
                return data, filename, guess_content_type(filename)

        data = await request.body()
        filename = request.headers.get("x-filename", "").strip() or fallback_name
        return data, filename, guess_content_type(filename)

    # -- websocket ------------------------------------------------------------

    async def websocket_endpoint(self, websocket: WebSocket) -> None:
        token = websocket.query_params.get("token", "")
        if self.ws_token and token != self.ws_token:
            logger.warning("ws_rejected", reason="bad_token")
            await websocket.close(code=1008)
            return
        client_id = websocket.query_params.get("client_id", "").strip()
        if not client_id:
            logger.warning("ws_rejected", reason="missing_client_id")
            await websocket.close(code=1008)
            return

        await websocket.accept()
        self.clients[client_id] = websocket
        logger.info("ws_connected", client_id=client_id)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    await self.handle_inbound(client_id, websocket, raw)
                except Exception as e:
                    logger.warning("ws_inbound_failed", client_id=client_id, error=str(e))
        except WebSocketDisconnect:
            logger.info("ws_disconnected", client_id=client_id)
        finally:
            if self.clients.get(client_id) is websocket:
                del self.clients[client_id]

    async def handle_inbound(self, client_id: str, websocket: WebSocket, raw: str) -> None:
        inbound = WsInbound.model_validate_json(raw)
        if inbound.type == "ping":
            await self._send(websocket, WsOutbound(type=FrameType.PONG))
            return
        if inbound.type != "message":
            return

        content = (inbound.content or "").strip()
        if not content:
            await self._send(websocket, WsOutbound(type=FrameType.ACK, msg_id=inbound.msg_id))
            return

        if self.orchestrator is not None and self.agent_settings is not None:
            await self._run_task(client_id, websocket, content)

        if inbound.msg_id and inbound.msg_id.strip():
            await self._send(websocket, WsOutbound(type=FrameType.ACK, msg_id=inbound.msg_id))

    async def _run_task(self, client_id: str, websocket: WebSocket, content: str) -> None:
        task_id = str(uuid.uuid4())
        bind_task(client_id=client_id, task_id=task_id)
        started = time.monotonic()
        self._record("user_activity", {"client_id": client_id, "channel": "ws"})
        self._record(
            "task_started",
            {"task_id": task_id, "client_id": client_id, "input_chars": len(content), "channel": "ws"},
        )
        await self._send(websocket, WsOutbound(type=FrameType.TYPING, chat_id=client_id, is_typing=True))

        usage: dict[str, Any] = {}
        failure: Optional[str] = None
        try:
            result = await self.orchestrator.run(
                content,
                self.agent_settings,
                self.workspace,
                {"client_id": client_id, "task_id": task_id},
            )
            response_text = result.content or ""
            usage = result.usage
        except Exception as e:
            failure = str(e) or "execution_error"
            response_text = f"Error: {failure}"
            logger.warning("ws_task_failed", error=failure)

        response_id = str(uuid.uuid4())
        chunks = chunk_text(response_text)
        for chunk in chunks:
            await self._send(
                websocket,
                WsOutbound(type=FrameType.TEXT_DELTA, content=chunk, chat_id=client_id, message_id=response_id),
            )
        if not chunks:
            await self._send(
                websocket,
                WsOutbound(type=FrameType.MESSAGE, content=response_text, chat_id=client_id, id=response_id),
            )
        await self._send(websocket, WsOutbound(type=FrameType.TYPING, chat_id=client_id, is_typing=False))
        await self._drain_bus(websocket, client_id)

        duration_ms = int((time.monotonic() - started) * 1000)
        if failure is not None:
            self._record(
                "task_failed",
                {"task_id": task_id, "client_id": client_id, "duration_ms": duration_ms, "error": failure},
            )
            return
        completed: dict[str, Any] = {
            "task_id": task_id,
            "client_id": client_id,
            "duration_ms": duration_ms,
            "output_chars": len(response_text),
        }
        cost = _number(usage.get("cost_usd"))
        if cost is not None:
            completed["cost_usd"] = cost
        self._record("task_succeeded", completed)

    async def _drain_bus(self, websocket: WebSocket, client_id: str) -> None:
        if self.bus is None:
            return
        for message in self.bus.drain():
            frame = map_bus_message(message)
            await self._send(websocket, WsOutbound(type=frame["type"], content=frame["content"], chat_id=client_id))


def create_app(**kwargs: Any) -> FastAPI:
    """Build the gateway application; keyword arguments go to :class:`GatewayServer`."""
    return GatewayServer(**kwargs).app()
