import json
import logging
import uuid
from typing import Optional

from aiokafka import AIOKafkaConsumer

from duelqueue.config import Config
from duelqueue.presentation.websocket import WebSocketManager, manager

logger = logging.getLogger("kafka_consumer")


async def forward_event(event: dict, ws_manager: WebSocketManager = manager) -> bool:
    user_id = event.get("user_id") if isinstance(event, dict) else None
    payload = event.get("payload") if isinstance(event, dict) else None
    if not user_id or not payload:
        logger.warning(f"Invalid event from Kafka: {event}")
        return False
    logger.info(f"Forwarding Kafka event to WebSocket for user {user_id}")
    await ws_manager.send_notification(user_id, payload)
    return True


async def kafka_ws_consumer(group_id: Optional[str] = None):
    """
    Forward match events from Kafka to the players connected to this instance.
    Runs until cancelled. Every instance needs to see every event, so each
    one consumes in its own group.
    """
    group_id = group_id or f"websocket_notifier-{uuid.uuid4().hex}"
    consumer = AIOKafkaConsumer(
        Config.MATCH_EVENTS_TOPIC,
        bootstrap_servers=Config.KAFKA_BOOTSTRAP_SERVERS,
        value_deserializer=lambda m: json.loads(m.decode("utf-8")),
        auto_offset_reset="latest",
        enable_auto_commit=True,
        group_id=group_id,
    )
    await consumer.start()
    logger.info(f"Kafka WebSocket consumer started on topic {Config.MATCH_EVENTS_TOPIC}")
    try:
        async for msg in consumer:
            await forward_event(msg.value)
    finally:
        await consumer.stop()
        logger.info("Kafka WebSocket consumer stopped")
