"""WebSocket API for export events.

The ConnectionManager is the ExportManager's default event emitter: every
export_progress, export_complete, export_error and export_cancelled event is
pushed to the sockets subscribed to that job or to the "exports" / "all"
topics.
"""

import json
from datetime import datetime, timezone
from typing import Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger


router = APIRouter(tags=["websocket"])

TOPICS = ("exports", "all")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Tracks sockets and what each one listens to."""

    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        # job_id -> sockets following that export
        self.export_subscriptions: Dict[str, Set[WebSocket]] = {}
        self.topic_subscriptions: Dict[str, Set[WebSocket]] = {
            topic: set() for topic in TOPICS
        }

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.debug(f"WebSocket connected ({len(self.active_connections)} open)")

    def disconnect(self, websocket: WebSocket):
        """Forget a socket and all of its subscriptions."""
        self.active_connections.discard(websocket)
        for job_id in list(self.export_subscriptions):
            self.unsubscribe_export(websocket, job_id)
        for sockets in self.topic_subscriptions.values():
            sockets.discard(websocket)
        logger.debug(f"WebSocket closed ({len(self.active_connections)} open)")

    def subscribe_export(self, websocket: WebSocket, job_id: str):
        self.export_subscriptions.setdefault(job_id, set()).add(websocket)
        logger.debug(f"WebSocket following export {job_id}")

    def unsubscribe_export(self, websocket: WebSocket, job_id: str):
        sockets = self.export_subscriptions.get(job_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.export_subscriptions[job_id]

    def subscribe_topic(self, websocket: WebSocket, topic: str) -> bool:
        """Subscribe to "exports" or "all". Unknown topics are ignored."""
        if topic not in self.topic_subscriptions:
            return False
        self.topic_subscriptions[topic].add(websocket)
        logger.debug(f"WebSocket following topic {topic}")
        return True

    def unsubscribe_topic(self, websocket: WebSocket, topic: str):
        self.topic_subscriptions.get(topic, set()).discard(websocket)

    async def send_personal(self, websocket: WebSocket, message: dict):
        """Send to one socket, dropping it if the send fails."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"Dropping WebSocket after failed send: {e}")
            self.disconnect(websocket)

    async def broadcast_export_event(self, event: str, data: dict):
        """Push an export event to everyone following it.

        Args:
            event: Event name, e.g. export_progress
            data: Event payload; its job_id selects the per-job subscribers
        """
        job_id = data.get("job_id")
        envelope = {
            "type": event,
            "job_id": job_id,
            "timestamp": _timestamp(),
            "data": data,
        }

        # A socket subscribed several ways still gets one copy
        recipients = set(self.export_subscriptions.get(job_id, ()))
        for topic in TOPICS:
            recipients |= self.topic_subscriptions[topic]

        failed = []
        for websocket in recipients:
            try:
                await websocket.send_json(envelope)
            except Exception:
                failed.append(websocket)

        for websocket in failed:
            self.disconnect(websocket)

    def handle_client_message(self, websocket: WebSocket, raw: str) -> Optional[dict]:
        """Apply one client control message and build the reply.

        Accepted messages:

        ```json
        {"action": "subscribe", "topic": "exports"}
        {"action": "subscribe", "job_id": "..."}
        {"action": "unsubscribe", "topic": "exports"}
        {"action": "unsubscribe", "job_id": "..."}
        {"action": "ping"}
        {"action": "stats"}
        ```

        Returns:
            Reply to send back, or None when there is nothing to say
        """
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {"type": "error", "message": "Invalid JSON"}
        if not isinstance(message, dict):
            return {"type": "error", "message": "Expected a JSON object"}

        action = message.get("action")
        if action == "ping":
            return {"type": "pong", "timestamp": _timestamp()}
        if action == "stats":
            return {"type": "stats", "data": self.get_stats()}

        if action == "subscribe":
            if "job_id" in message:
                self.subscribe_export(websocket, message["job_id"])
                return {"type": "subscribed", "job_id": message["job_id"]}
            if "topic" in message:
                if not self.subscribe_topic(websocket, message["topic"]):
                    return {"type": "error", "message": f"Unknown topic: {message['topic']}"}
                return {"type": "subscribed", "topic": message["topic"]}

        if action == "unsubscribe":
            if "job_id" in message:
                self.unsubscribe_export(websocket, message["job_id"])
                return {"type": "unsubscribed", "job_id": message["job_id"]}
            if "topic" in message:
                self.unsubscribe_topic(websocket, message["topic"])
                return {"type": "unsubscribed", "topic": message["topic"]}

        return None

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self.active_connections),
            "export_subscriptions": len(self.export_subscriptions),
            "topic_subscriptions": {
                topic: len(sockets) for topic, sockets in self.topic_subscriptions.items()
            },
        }


# Global connection manager instance
manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get the global connection manager instance."""
    return manager


async def _serve(websocket: WebSocket):
    """Answer control messages until the client goes away."""
    try:
        while True:
            raw = await websocket.receive_text()
            reply = manager.handle_client_message(websocket, raw)
            if reply is not None:
                await manager.send_personal(websocket, reply)
    except WebSocketDisconnect:
        manager.disconnect(websocket)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Export events for whatever the client subscribes to.

    Events are sent as:

    ```json
    {"type": "export_progress", "job_id": "...", "timestamp": "...", "data": {...}}
    ```
    """
    await manager.connect(websocket)
    await manager.send_personal(websocket, {
        "type": "connected",
        "message": "Connected to Clipforge export events",
        "timestamp": _timestamp(),
    })
    await _serve(websocket)


@router.websocket("/ws/export/{job_id}")
async def export_websocket(websocket: WebSocket, job_id: str):
    """Events of a single export, subscribed on connect."""
    await manager.connect(websocket)
    manager.subscribe_export(websocket, job_id)
    await manager.send_personal(websocket, {
        "type": "subscribed",
        "job_id": job_id,
        "timestamp": _timestamp(),
    })
    await _serve(websocket)


@router.get("/ws/stats")
async def get_websocket_stats():
    """Get WebSocket connection statistics."""
    return manager.get_stats()
