from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from duelqueue.business.services import MatchEventPublisher
from duelqueue.presentation.kafka_consumer import forward_event
from duelqueue.presentation.notifications import build_player_notifier
from duelqueue.presentation.websocket import WebSocketManager


def fake_socket(send_error=None):
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock(side_effect=send_error)
    return websocket


@pytest.mark.asyncio
async def test_manager_sends_to_every_connection():
    ws_manager = WebSocketManager()
    first, second = fake_socket(), fake_socket()
    await ws_manager.connect(first, "a")
    await ws_manager.connect(second, "a")

    await ws_manager.send_notification("a", {"status": "match_found"})

    first.send_json.assert_awaited_once_with({"status": "match_found"})
    second.send_json.assert_awaited_once_with({"status": "match_found"})


@pytest.mark.asyncio
async def test_manager_drops_broken_connections():
    ws_manager = WebSocketManager()
    broken = fake_socket(send_error=RuntimeError("closed"))
    await ws_manager.connect(broken, "a")

    await ws_manager.send_notification("a", {"status": "match_found"})

    assert ws_manager.connection_count("a") == 0
    assert "a" not in ws_manager.active_connections


@pytest.mark.asyncio
async def test_notifier_pushes_locally_without_kafka():
    ws_manager = MagicMock()
    ws_manager.send_notification = AsyncMock()

    notify = build_player_notifier(ws_manager)
    await notify("a", {"status": "search_cancelled"})

    ws_manager.send_notification.assert_awaited_once_with("a", {"status": "search_cancelled"})


@pytest.mark.asyncio
async def test_notifier_publishes_through_kafka():
    ws_manager = MagicMock()
    ws_manager.send_notification = AsyncMock()
    publisher = MagicMock()
    publisher.publish = AsyncMock()

    notify = build_player_notifier(ws_manager, publisher)
    await notify("a", {"status": "match_found"})

    publisher.publish.assert_awaited_once_with("a", {"status": "match_found"})
    ws_manager.send_notification.assert_not_awaited()


@pytest.mark.asyncio
async def test_forward_event_to_websocket():
    ws_manager = MagicMock()
    ws_manager.send_notification = AsyncMock()

    forwarded = await forward_event(
        {"user_id": "a", "payload": {"status": "match_found"}}, ws_manager
    )

    assert forwarded is True
    ws_manager.send_notification.assert_awaited_once_with("a", {"status": "match_found"})


@pytest.mark.asyncio
async def test_forward_event_ignores_invalid_events():
    ws_manager = MagicMock()
    ws_manager.send_notification = AsyncMock()

    assert await forward_event({"payload": {"status": "x"}}, ws_manager) is False
    assert await forward_event("garbage", ws_manager) is False
    ws_manager.send_notification.assert_not_awaited()


@pytest.mark.asyncio
@patch("duelqueue.business.services.events.AIOKafkaProducer")
async def test_publisher_sends_event(mock_producer_cls):
    producer = MagicMock()
    producer.start = AsyncMock()
    producer.stop = AsyncMock()
    producer.send_and_wait = AsyncMock()
    mock_producer_cls.return_value = producer

    publisher = MatchEventPublisher(bootstrap_servers="kafka:9092", topic="match_events")
    await publisher.start()
    await publisher.publish("a", {"status": "match_found"})
    await publisher.stop()

    producer.send_and_wait.assert_awaited_once_with(
        "match_events", {"user_id": "a", "payload": {"status": "match_found"}}
    )
    producer.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_publisher_must_be_started():
    publisher = MatchEventPublisher(bootstrap_servers="kafka:9092", topic="match_events")

    with pytest.raises(RuntimeError):
        await publisher.publish("a", {"status": "match_found"})
