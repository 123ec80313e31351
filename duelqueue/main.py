import asyncio
import os
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from duelqueue.business.services import MatchEventPublisher, build_matchmaking
from duelqueue.config import Config, logger
from duelqueue.data.repositories import init_db
from duelqueue.errors import register_exception_handlers
from duelqueue.presentation.kafka_consumer import kafka_ws_consumer
from duelqueue.presentation.notifications import build_player_notifier
from duelqueue.presentation.routes import matchmaking_router
from duelqueue.presentation.websocket import manager


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        client = request.client.host if request.client else "unknown"
        logger.info(
            f"Request started: {request.method} {request.url.path} - "
            f"ID: {request_id} - Client: {client}"
        )
        start_time = time.time()
        try:
            response = await call_next(request)
            process_time = time.time() - start_time
            logger.info(
                f"Request completed: {request.method} {request.url.path} - "
                f"ID: {request_id} - Status: {response.status_code} - "
                f"Time: {process_time:.4f}s"
            )
            return response
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path} - "
                f"ID: {request_id} - Error: {e} - "
                f"Time: {process_time:.4f}s"
            )
            raise


@asynccontextmanager
async def life_span(app: FastAPI):
    logger.info("Server is starting...")
    if os.environ.get("TESTING") != "True":
        try:
            await init_db()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise
    else:
        logger.info("Skipping database initialization for tests")

    publisher = None
    consumer_task = None
    if Config.KAFKA_ENABLED:
        publisher = MatchEventPublisher()
        await publisher.start()
        consumer_task = asyncio.create_task(kafka_ws_consumer())

    matchmaking = await build_matchmaking(
        notify_player=build_player_notifier(manager, publisher)
    )
    app.state.matchmaking = matchmaking
    if Config.MATCHMAKER_AUTOSTART:
        matchmaking.driver.start()
    else:
        logger.info("Matchmaker autostart disabled, ticks run on demand only")

    yield

    await matchmaking.driver.stop()
    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
    if publisher is not None:
        await publisher.stop()
    logger.info("Server has been stopped")


version = "v1"

app = FastAPI(
    title="Duel Queue API",
    description="Rating based matchmaking for 1-on-1 duels",
    version=version,
    lifespan=life_span,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)

register_exception_handlers(app)

app.include_router(matchmaking_router, prefix=f"/api/{version}", tags=["matchmaking"])

logger.info(f"Application startup complete - API version: {version}")
