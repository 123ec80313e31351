from typing import Any, Dict, List

from fastapi import WebSocket

from duelqueue.config import logger

ws_logger = logger.getChild("websocket")


class WebSocketManager:
    """
    Keeps the open WebSocket connections of each player and pushes
    matchmaking notifications to them.
    """

    def __init__(self):
        # A player can have several tabs open
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        ws_logger.info(
            f"WebSocket connected for user {user_id}. "
            f"Total connections: {len(self.active_connections[user_id])}"
        )

    def disconnect(self, websocket: WebSocket, user_id: str):
        connections = self.active_connections.get(user_id)
        if connections is None:
            return
        if websocket in connections:
            connections.remove(websocket)
            ws_logger.info(
                f"WebSocket disconnected for user {user_id}. "
                f"Remaining connections: {len(connections)}"
            )
        if not connections:
            del self.active_connections[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self.active_connections.get(user_id, []))

    async def send_notification(self, user_id: str, message: Any):
        """
        Send a notification to all WebSocket connections of a player.
        Connections that fail to receive it are dropped.
        """
        connections = self.active_connections.get(user_id)
        if not connections:
            ws_logger.debug(f"No active WebSocket connections for user {user_id}")
            return

        disconnected = []
        for websocket in list(connections):
            try:
                await websocket.send_json(message)
                ws_logger.debug(f"Notification sent to user {user_id}")
            except Exception as e:
                ws_logger.error(f"Error sending notification to user {user_id}: {str(e)}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(websocket, user_id)


manager = WebSocketManager()
