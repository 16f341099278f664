"""WebSocket fan-out of workflow progress events."""

import asyncio

from fastapi import WebSocket


class WebSocketManager:
    """Manages WebSocket subscribers grouped by job id.

    The last message broadcast for a job is remembered so a client that
    connects mid-run immediately receives the current stage. Finished jobs
    are forgotten ``replay_seconds`` after their final message.
    """

    def __init__(self, replay_seconds: float = 60.0):
        self.replay_seconds = replay_seconds
        self.connections: dict[str, list[WebSocket]] = {}
        self.last_message: dict[str, dict] = {}

    async def connect(self, key: str, websocket: WebSocket) -> None:
        """Accept a connection, register it and replay the latest event."""
        await websocket.accept()
        self.connections.setdefault(key, []).append(websocket)

        if key in self.last_message:
            await websocket.send_json(self.last_message[key])

    async def broadcast(self, key: str, message: dict) -> None:
        """Send a message to every subscriber of a job.

        Subscribers whose send fails are dropped.
        """
        self.last_message[key] = message

        disconnected = []
        for ws in self.connections.get(key, []):
            try:
                await ws.send_json(message)
            except Exception:
                disconnected.append(ws)

        for ws in disconnected:
            self.disconnect(key, ws)

    def disconnect(self, key: str, websocket: WebSocket) -> None:
        if websocket in self.connections.get(key, []):
            self.connections[key].remove(websocket)

    def schedule_cleanup(self, key: str) -> None:
        """Drop a finished job's subscribers and replay message after the replay window."""
        asyncio.get_running_loop().call_later(self.replay_seconds, self.cleanup, key)

    def cleanup(self, key: str) -> None:
        """Forget all subscribers and the replay message of a job."""
        self.connections.pop(key, None)
        self.last_message.pop(key, None)
