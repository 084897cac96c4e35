# main.py - Telemetry relay server (FastAPI + WebSocket)
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from relay.config import Settings, settings as default_settings
from relay.connection import WebSocketConnection
from relay.handler import ConnectionHandler
from relay.hub import RelayHub

logging.basicConfig(
    level=default_settings.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    force=True,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    hub: RelayHub = app.state.relay
    hub.reaper.start()
    logger.info(
        "Relay started (codes=%s, flow=%s, reconnect=%s)",
        hub.settings.CODE_MODE.value,
        hub.settings.PAIRING_FLOW.value,
        hub.settings.RECONNECT_POLICY.value,
    )
    try:
        yield
    finally:
        await hub.reaper.stop()


async def relay_socket(websocket: WebSocket):
    hub: RelayHub = websocket.app.state.relay
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    handler = ConnectionHandler(hub, connection)
    hub.connections.add(connection)
    logger.info("New connection %s", connection.id)

    try:
        while True:
            try:
                raw = await asyncio.wait_for(
                    connection.receive_text(),
                    timeout=hub.settings.KEEPALIVE_SECONDS,
                )
            except asyncio.TimeoutError:
                await connection.send({"type": "ping"})
                continue
            await handler.handle_text(raw)
    except WebSocketDisconnect:
        logger.info("Connection closed: %s", handler.session_id or connection.id)
    except Exception:
        logger.exception("WebSocket error on connection %s", connection.id)
    finally:
        hub.connections.discard(connection)
        await handler.close()


def create_app(settings: Settings = None, hub: RelayHub = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Telemetry Relay", lifespan=lifespan)
    app.state.relay = hub or RelayHub(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "Telemetry relay server is running"

    @app.get("/health")
    async def health_check():
        return app.state.relay.status()

    app.add_api_websocket_route("/", relay_socket)
    app.add_api_websocket_route("/ws", relay_socket)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
