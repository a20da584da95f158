"""WebSocket streaming hub for real-time execution events."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def stamp(event: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *event* carrying an ISO-8601 timestamp."""
    stamped = dict(event)
    if not stamped.get("timestamp"):
        stamped["timestamp"] = _iso_now()
    return stamped


@dataclass
class Connection:
    """A registered WebSocket and the channels it listens to."""

    websocket: WebSocket
    subscriptions: set[str] = field(default_factory=set)
    connected: bool = True
    connected_at: str = field(default_factory=_iso_now)
    disconnected_at: float | None = None

    @property
    def is_open(self) -> bool:
        if not self.connected:
            return False
        state = getattr(self.websocket, "client_state", WebSocketState.CONNECTED)
        return state == WebSocketState.CONNECTED

    def mark_disconnected(self) -> None:
        if self.connected:
            self.connected = False
            self.disconnected_at = time.monotonic()


class StreamingHub:
    """Connection registry with channel subscriptions.

    Constructed once per application and shared by reference with the
    execution core. Delivery is best-effort: a connection that cannot be
    written to is pruned without affecting the others.
    """

    def __init__(
        self,
        idle_timeout: float = 300.0,
        sweep_interval: float = 60.0,
    ) -> None:
        self._connections: dict[str, Connection] = {}
        self._subscriptions: dict[str, set[str]] = {}
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._sweeper: asyncio.Task[None] | None = None

    # ── Registry ──────────────────────────────────────────────────────────

    async def connect(self, ws: WebSocket, connection_id: str | None = None) -> str:
        await ws.accept()
        connection_id = connection_id or str(uuid4())
        self.add_connection(ws, connection_id)
        return connection_id

    def add_connection(self, ws: WebSocket, connection_id: str) -> None:
        self._connections[connection_id] = Connection(websocket=ws)
        logger.debug("ws: connected %s", connection_id)

    def disconnect(self, connection_id: str) -> None:
        """Remove a connection and all of its subscriptions."""
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return
        conn.mark_disconnected()
        for channel in list(self._subscriptions):
            subscribers = self._subscriptions[channel]
            subscribers.discard(connection_id)
            if not subscribers:
                del self._subscriptions[channel]
        logger.debug("ws: disconnected %s", connection_id)

    def mark_disconnected(self, connection_id: str) -> None:
        """Flag a connection as gone; the sweeper removes it later."""
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.mark_disconnected()

    def subscribe(self, connection_id: str, channel: str) -> None:
        self._subscriptions.setdefault(channel, set()).add(connection_id)
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.subscriptions.add(channel)

    def unsubscribe(self, connection_id: str, channel: str) -> None:
        subscribers = self._subscriptions.get(channel)
        if subscribers is not None:
            subscribers.discard(connection_id)
            if not subscribers:
                del self._subscriptions[channel]
        conn = self._connections.get(connection_id)
        if conn is not None:
            conn.subscriptions.discard(channel)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    # ── Delivery ──────────────────────────────────────────────────────────

    async def _send(self, connection_id: str, message: str) -> bool:
        conn = self._connections.get(connection_id)
        if conn is None:
            return False
        if not conn.is_open:
            self.disconnect(connection_id)
            return False
        try:
            await conn.websocket.send_text(message)
        except Exception as exc:
            logger.warning("ws: send to %s failed: %s", connection_id, exc)
            self.disconnect(connection_id)
            return False
        return True

    async def broadcast(self, event: dict[str, Any]) -> int:
        """Deliver *event* to every live connection. Returns the delivery count."""
        message = json.dumps(stamp(event), default=str)
        delivered = 0
        for connection_id in list(self._connections):
            if await self._send(connection_id, message):
                delivered += 1
        return delivered

    async def send_to_channel(self, channel: str, event: dict[str, Any]) -> int:
        subscribers = self._subscriptions.get(channel)
        if not subscribers:
            return 0
        message = json.dumps(stamp({**event, "channel": channel}), default=str)
        delivered = 0
        for connection_id in list(subscribers):
            if await self._send(connection_id, message):
                delivered += 1
        return delivered

    async def send_to_connection(self, connection_id: str, event: dict[str, Any]) -> bool:
        return await self._send(connection_id, json.dumps(stamp(event), default=str))

    async def send_test_update(self, session_id: str, update: dict[str, Any]) -> int:
        return await self.send_to_channel(
            f"test-{session_id}",
            {"type": "test-update", "session_id": session_id, **update},
        )

    async def send_system_notification(self, message: str, level: str = "info") -> int:
        return await self.broadcast(
            {"type": "system-notification", "level": level, "message": message}
        )

    # ── Client protocol ───────────────────────────────────────────────────

    async def handle_message(self, connection_id: str, data: Any) -> None:
        """Dispatch one decoded client message."""
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            await self.send_to_connection(
                connection_id, {"type": "error", "message": "Invalid message format"}
            )
            return

        msg_type = data["type"]
        payload = data.get("payload") or {}
        channel = payload.get("channel") if isinstance(payload, dict) else None

        if msg_type == "subscribe" and channel:
            self.subscribe(connection_id, channel)
            await self.send_to_connection(
                connection_id, {"type": "subscription-confirmed", "channel": channel}
            )
        elif msg_type == "unsubscribe" and channel:
            self.unsubscribe(connection_id, channel)
            await self.send_to_connection(
                connection_id, {"type": "unsubscription-confirmed", "channel": channel}
            )
        elif msg_type == "ping":
            await self.send_to_connection(connection_id, {"type": "pong"})
        elif msg_type == "get-status":
            await self.send_to_connection(
                connection_id, {"type": "status", "payload": self.status()}
            )
        else:
            logger.info("ws: unknown message type %r from %s", msg_type, connection_id)

    def status(self) -> dict[str, Any]:
        return {
            "total_connections": len(self._connections),
            "active_channels": len(self._subscriptions),
            "connections": [
                {
                    "id": connection_id,
                    "connected": conn.connected,
                    "connected_at": conn.connected_at,
                    "subscriptions": sorted(conn.subscriptions),
                }
                for connection_id, conn in self._connections.items()
            ],
            "channels": [
                {"channel": channel, "subscriber_count": len(subscribers)}
                for channel, subscribers in self._subscriptions.items()
            ],
        }

    # ── Sweeping ──────────────────────────────────────────────────────────

    def sweep(self, now: float | None = None) -> list[str]:
        """Remove connections that have been gone for longer than the idle timeout."""
        now = time.monotonic() if now is None else now
        removed: list[str] = []
        for connection_id, conn in list(self._connections.items()):
            if conn.connected and conn.is_open:
                continue
            if conn.disconnected_at is None:
                # transport closed without a notification; start the grace period now
                conn.mark_disconnected()
                conn.disconnected_at = now
            if now - conn.disconnected_at >= self.idle_timeout:
                self.disconnect(connection_id)
                removed.append(connection_id)
        if removed:
            logger.info("ws: swept %d stale connection(s)", len(removed))
        return removed

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever())

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None


async def ws_stream_endpoint(ws: WebSocket, hub: StreamingHub) -> None:
    """WebSocket endpoint handler: register, relay client messages until disconnect."""
    connection_id = await hub.connect(ws)
    await hub.send_to_connection(
        connection_id,
        {
            "type": "connection-established",
            "connection_id": connection_id,
            "message": "Connected to SAINT Backend",
        },
    )
    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await hub.send_to_connection(
                    connection_id, {"type": "error", "message": "Invalid message format"}
                )
                continue
            await hub.handle_message(connection_id, data)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(connection_id)
