from typing import Any, Dict, Optional

from duelqueue.business.matchmaking import PlayerNotifier
from duelqueue.business.services import MatchEventPublisher
from duelqueue.presentation.websocket import WebSocketManager


def build_player_notifier(
    ws_manager: WebSocketManager, publisher: Optional[MatchEventPublisher] = None
) -> PlayerNotifier:
    """
    With Kafka enabled events go through the topic, the consumer of every
    instance (this one included) forwards them to its sockets. Without it
    they are pushed to local sockets directly.
    """

    async def notify_player(user_id: str, payload: Dict[str, Any]) -> None:
        if publisher is not None:
            await publisher.publish(user_id, payload)
        else:
            await ws_manager.send_notification(user_id, payload)

    return notify_player
