# src/simple_social_feed/events.py
import json
import logging
import os
from threading import Thread
from typing import Any

import pika
from pika.exceptions import AMQPError
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Env
# -----------------------------------------------------------------------------
RABBITMQ_HOST = os.getenv("RABBITMQ_HOST", "rabbitmq")
RABBITMQ_USER = os.getenv("RABBITMQ_USER", "guest")
RABBITMQ_PASSWORD = os.getenv("RABBITMQ_PASSWORD", "guest")


# -----------------------------------------------------------------------------
# Disable logic (IMPORTANT for tests / CI)
# -----------------------------------------------------------------------------
def _disabled() -> bool:
    """
    Queue publishing is disabled if:
    - DISABLE_QUEUE=true, OR
    - RABBITMQ_HOST is set to a known "disabled" value (used in unit tests)
    """
    if os.getenv("DISABLE_QUEUE", "").strip().lower() == "true":
        return True

    host = (os.getenv("RABBITMQ_HOST", RABBITMQ_HOST) or "").strip().lower()
    if host in {"disabled", "off", "none", "no", "0"}:
        return True

    return False


def _conn_params():
    host = os.getenv("RABBITMQ_HOST", RABBITMQ_HOST)
    user = os.getenv("RABBITMQ_USER", RABBITMQ_USER)
    pw = os.getenv("RABBITMQ_PASSWORD", RABBITMQ_PASSWORD)
    creds = pika.PlainCredentials(user, pw)
    return pika.ConnectionParameters(
        host=host,
        credentials=creds,
        heartbeat=30,
        blocked_connection_timeout=5,
        connection_attempts=1,
        retry_delay=0.0,
        socket_timeout=2,
    )


# -----------------------------------------------------------------------------
# Publish: fanout exchange per event (non-blocking, failures only logged)
# -----------------------------------------------------------------------------
def _do_publish_event(exchange: str, body: bytes) -> None:
    try:
        connection = pika.BlockingConnection(_conn_params())
        try:
            channel = connection.channel()
            channel.exchange_declare(exchange=exchange, exchange_type="fanout", durable=True)
            channel.basic_publish(
                exchange=exchange,
                routing_key="",
                body=body,
                properties=pika.BasicProperties(content_type="application/json", delivery_mode=2),
            )
        finally:
            if connection.is_open:
                connection.close()
    except (AMQPError, OSError) as exc:
        logger.error("publish to exchange %r failed: %s", exchange, exc)


def publish_event(exchange: str, payload: dict) -> None:
    """
    Fire-and-forget. Never block API requests.
    """
    if _disabled():
        return

    body = json.dumps(jsonable_encoder(payload)).encode("utf-8")
    t = Thread(target=_do_publish_event, args=(exchange, body), daemon=True)
    t.start()


# -----------------------------------------------------------------------------
# Websocket clients (Browser)
# -----------------------------------------------------------------------------
class ConnectionHub:
    def __init__(self):
        self._sockets: set[WebSocket] = set()

    @property
    def size(self) -> int:
        return len(self._sockets)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._sockets.add(websocket)
        logger.info("socket connected (%d open)", self.size)

    def disconnect(self, websocket: WebSocket) -> None:
        self._sockets.discard(websocket)
        logger.info("socket disconnected (%d open)", self.size)

    async def broadcast(self, event: str, data: Any) -> None:
        message = {"event": event, "data": jsonable_encoder(data)}
        for websocket in list(self._sockets):
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError) as exc:
                # Verbindung ist weg, aber noch nicht abgemeldet
                logger.warning("dropping socket after failed send: %s", exc)
                self.disconnect(websocket)


hub = ConnectionHub()


class Broadcaster:
    """Verteilt Events an alle Websocket-Clients und an die gleichnamige Exchange."""

    def __init__(self, connections: ConnectionHub):
        self.connections = connections

    async def emit(self, event: str, payload: dict) -> None:
        await self.connections.broadcast(event, payload)
        publish_event(event, payload)


broadcaster = Broadcaster(hub)


def get_broadcaster() -> Broadcaster:
    return broadcaster
