import json
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer

from duelqueue.config import Config, logger

events_logger = logger.getChild("events")


class MatchEventPublisher:
    """
    Publishes player notifications to the match events topic so that every
    API instance can forward them to its own WebSocket connections.
    """

    def __init__(
        self,
        bootstrap_servers: Optional[str] = None,
        topic: Optional[str] = None,
    ):
        self.bootstrap_servers = bootstrap_servers or Config.KAFKA_BOOTSTRAP_SERVERS
        self.topic = topic or Config.MATCH_EVENTS_TOPIC
        self._producer: Optional[AIOKafkaProducer] = None

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        )
        await self._producer.start()
        events_logger.info(
            f"Kafka producer started for topic {self.topic} on {self.bootstrap_servers}"
        )

    async def stop(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            events_logger.info("Kafka producer stopped")

    async def publish(self, user_id: str, payload: Dict[str, Any]) -> None:
        if self._producer is None:
            raise RuntimeError("Match event publisher has not been started")
        await self._producer.send_and_wait(
            self.topic, {"user_id": user_id, "payload": payload}
        )
        events_logger.debug(f"Published {payload.get('status')} event for user {user_id}")
