"""
FastAPI surface: the MessagePack WebSocket plus a few inspection routes.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from .. import HostConfig
from ..errors import (
    CodecError,
    InitError,
    LoadError,
    TransportError,
    UnknownInstanceError,
    UnknownProgramError,
)
from ..registry import InstanceRegistry
from ..sync import SyncLoop, collect_broadcast
from . import schemas
from .codec import (
    decode_client_message,
    decode_value,
    encode_server_message,
    roster_message,
    scene_message,
)

LOG = logging.getLogger(__name__)


class ClientSession:
    """Track one connection and run its reader and periodic writer."""

    def __init__(self, manager: "SessionManager", websocket: WebSocket) -> None:
        self.manager = manager
        self.websocket = websocket
        self.session_id = uuid.uuid4().hex
        self.rounds_sent = 0
        self._stop_event = asyncio.Event()
        self._closing = False
        self.logger = LOG.getChild(f"ws.{self.session_id[:8]}")

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        try:
            await self.websocket.accept()
        except Exception:  # pragma: no cover
            self.logger.exception("Failed to accept WebSocket connection")
            return

        await self.manager.register(self)
        tasks = [
            asyncio.create_task(self._recv_loop(), name=f"recv-{self.session_id[:8]}"),
            asyncio.create_task(self._broadcast_loop(), name=f"send-{self.session_id[:8]}"),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._stop_event.set()
            for task in tasks:
                task.cancel()
            for task in tasks:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            await self.manager.unregister(self)
            await self.close(code=1000)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self._closing:
            return
        self._closing = True
        self._stop_event.set()
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await self.websocket.close(code=code, reason=reason)

    async def send(self, message: schemas.ServerMessage) -> None:
        frame = encode_server_message(message)
        try:
            await self.websocket.send_bytes(frame)
        except asyncio.CancelledError:
            raise
        except WebSocketDisconnect as exc:
            raise TransportError("client disconnected") from exc
        except Exception as exc:
            raise TransportError(f"failed to send to client: {exc}") from exc

    async def send_round(self) -> None:
        broadcast = collect_broadcast(self.manager.registry)
        await self.send(roster_message(broadcast.roster))
        for instance_id, scene in broadcast.scenes:
            await self.send(scene_message(instance_id, scene))
        self.rounds_sent += 1

    async def _recv_loop(self) -> None:
        try:
            while not self.is_stopped:
                try:
                    message = await self.websocket.receive()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    self.logger.warning("Error reading from client: %s", exc)
                    break

                if message.get("type") == "websocket.disconnect":
                    self.logger.debug("Client disconnected (code=%s)", message.get("code"))
                    break

                frame = message.get("bytes")
                if frame is None:
                    continue

                try:
                    await self.manager.handle_frame(self, frame)
                except asyncio.CancelledError:
                    raise
                except Exception:  # pragma: no cover - guard rails
                    self.logger.exception("Unhandled error while processing message")
        finally:
            self._stop_event.set()

    async def _broadcast_loop(self) -> None:
        try:
            while not self.is_stopped:
                try:
                    await self.send_round()
                except TransportError as exc:
                    self.logger.info("Stopping broadcast: %s", exc)
                    break
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self.manager.broadcast_interval
                    )
        finally:
            self._stop_event.set()


class SessionManager:
    """Route client messages into the registry and track open sessions."""

    def __init__(self, registry: InstanceRegistry, *, broadcast_interval: float = 0.1) -> None:
        self.registry = registry
        self.broadcast_interval = max(0.01, float(broadcast_interval))
        self._sessions: Dict[str, ClientSession] = {}
        self._lock = asyncio.Lock()

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    async def run(self, websocket: WebSocket) -> None:
        session = ClientSession(self, websocket)
        await session.run()

    async def register(self, session: ClientSession) -> None:
        async with self._lock:
            self._sessions[session.session_id] = session
        LOG.info("Client connected session=%s", session.session_id)

    async def unregister(self, session: ClientSession) -> None:
        async with self._lock:
            self._sessions.pop(session.session_id, None)
        LOG.info("Client disconnected session=%s", session.session_id)

    async def handle_frame(self, session: ClientSession, frame: bytes) -> None:
        try:
            message = decode_client_message(frame)
        except CodecError as exc:
            session.logger.warning("Dropping malformed client message: %s", exc)
            return

        if message.type == schemas.ClientMessageType.TAP:
            await self._handle_tap(session, message)
            return

        if message.type == schemas.ClientMessageType.INSTANTIATE:
            await self._handle_instantiate(session, message)
            return

        session.logger.debug("Ignoring client message of type %s", message.type.name)

    async def _handle_tap(self, session: ClientSession, message: schemas.ClientMessage) -> None:
        session.logger.info("Tapped on %r in instance %d", message.entity_id, message.instance)
        try:
            await asyncio.to_thread(self.registry.tap, message.instance, message.entity_id)
        except UnknownInstanceError as exc:
            session.logger.warning("Dropping tap: %s", exc)

    async def _handle_instantiate(
        self, session: ClientSession, message: schemas.ClientMessage
    ) -> Optional[int]:
        request = message.instantiate_request
        if request is None:
            session.logger.warning("Instantiate message without a request body")
            return None

        data = None
        if request.data:
            try:
                data = decode_value(request.data)
            except CodecError as exc:
                session.logger.warning("Dropping instantiate request for %r: %s", request.program, exc)
                return None
            if not data.is_table:
                session.logger.warning(
                    "Dropping instantiate request for %r: state must be a table", request.program
                )
                return None

        try:
            instance_id = await asyncio.to_thread(
                self.registry.instantiate, request.program, auto_init=True, data=data
            )
        except (UnknownProgramError, LoadError) as exc:
            session.logger.warning("Failed to instantiate %r: %s", request.program, exc)
            return None
        except InitError as exc:
            session.logger.warning(
                "Instance %s of %r failed to initialise; leaving it unbound: %s",
                exc.instance_id,
                request.program,
                exc,
            )
            return None

        if request.tag != schemas.NO_TAG:
            self.registry.bind(request.tag, instance_id)
        return instance_id


def create_app(
    *,
    registry: Optional[InstanceRegistry] = None,
    config: Optional[HostConfig] = None,
    sync_loop: Optional[SyncLoop] = None,
    lifespan: Optional[Callable[[FastAPI], contextlib.AbstractAsyncContextManager]] = None,
) -> FastAPI:
    host_config = config or HostConfig()
    host_registry = registry if registry is not None else InstanceRegistry()
    loop = sync_loop or SyncLoop(host_registry, tick_interval=host_config.tick_interval)
    sessions = SessionManager(host_registry, broadcast_interval=host_config.broadcast_interval)

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncIterator[None]:
        loop.start()
        try:
            if lifespan is not None:
                async with lifespan(app):
                    yield
            else:
                yield
        finally:
            loop.stop()

    app = FastAPI(title="arhost", lifespan=app_lifespan)
    app.state.registry = host_registry
    app.state.sync_loop = loop
    app.state.sessions = sessions

    @app.websocket("/")
    async def websocket_root(websocket: WebSocket) -> None:
        await sessions.run(websocket)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await sessions.run(websocket)

    @app.get("/healthz")
    async def healthz() -> dict:
        return {
            "status": "ok",
            "instances": len(host_registry),
            "sessions": sessions.session_count,
            "ticks": loop.ticks,
        }

    @app.get("/programs")
    async def list_programs() -> dict:
        return {"programs": host_registry.programs()}

    @app.get("/api/state", response_model=schemas.StateModel)
    async def get_full_state() -> schemas.StateModel:
        snapshots = host_registry.snapshots()
        roster = host_registry.roster()
        instances = host_registry.instances()
        entries = []
        for entry in roster:
            scene = snapshots[entry.instance_id] if entry.instance_id < len(snapshots) else None
            entries.append(
                schemas.InstanceModel(
                    instance=entry.instance_id,
                    program=entry.program,
                    tag=entry.tag,
                    lifecycle=instances[entry.instance_id].lifecycle.value,
                    state=entry.state.to_python(),
                    scene=scene.to_dict() if scene is not None else None,
                )
            )
        return schemas.StateModel(
            programs=host_registry.programs(),
            bindings=host_registry.bindings(),
            instances=entries,
        )

    @app.post("/bindings")
    async def bind_tag(payload: schemas.BindRequest) -> dict:
        try:
            host_registry.bind(payload.tag, payload.instance)
        except UnknownInstanceError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from None
        return {"status": "ok", "bindings": host_registry.bindings()}

    return app
