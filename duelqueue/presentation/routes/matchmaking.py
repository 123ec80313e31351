from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)

from duelqueue.business.services import MatchmakingService
from duelqueue.config import logger
from duelqueue.data.schemas import (
    JoinQueueRequest,
    QueueStats,
    QueueStatus,
    TickReport,
)
from duelqueue.errors import AppException, DatabaseException
from duelqueue.presentation.websocket import manager

# Create a module-specific logger
matchmaking_logger = logger.getChild("matchmaking.routes")

router = APIRouter(prefix="/matchmaking", tags=["matchmaking"])


def get_matchmaking_service(request: Request) -> MatchmakingService:
    return request.app.state.matchmaking


async def run_matchmaking_tick(service: MatchmakingService):
    try:
        await service.run_once()
    except Exception as e:
        matchmaking_logger.error(f"Background matchmaking tick failed: {str(e)}")


@router.post("/queue", response_model=QueueStatus)
async def join_queue(
    request_data: JoinQueueRequest,
    background_tasks: BackgroundTasks,
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    """
    Put the player in the queue for the given mode.

    A matchmaking tick is scheduled right away so that a waiting opponent is
    found without waiting for the next periodic tick.
    """
    user_id = request_data.user_id
    matchmaking_logger.info(f"Queue join request for user ID: {user_id} ({request_data.mode})")

    try:
        status = await service.join_queue(user_id, request_data.mode)
    except AppException as e:
        raise e
    except Exception as e:
        matchmaking_logger.error(f"Unexpected error during queue join: {str(e)}")
        raise DatabaseException(detail="An unexpected error occurred")

    background_tasks.add_task(run_matchmaking_tick, service)
    return status


@router.delete("/queue/{user_id}")
async def leave_queue(
    user_id: str,
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    matchmaking_logger.info(f"Queue leave request for user ID: {user_id}")
    try:
        removed = await service.leave_queue(user_id)
    except AppException as e:
        raise e
    except Exception as e:
        matchmaking_logger.error(f"Unexpected error during queue leave: {str(e)}")
        raise DatabaseException(detail="An unexpected error occurred")

    return {
        "user_id": user_id,
        "removed": removed,
        "message": "Removed from queue" if removed else "Player was not in the queue",
    }


@router.get("/queue/{user_id}", response_model=QueueStatus)
async def get_queue_status(
    user_id: str,
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    return await service.queue_status(user_id)


@router.get("/queue/{user_id}/wait")
async def wait_for_match(
    user_id: str,
    timeout: float = Query(30.0, ge=0, le=300),
    service: MatchmakingService = Depends(get_matchmaking_service),
):
    """
    Long poll for the end of the player's search.

    Answers as soon as the search ends, or with `searching` once `timeout`
    seconds have passed. A search that was evicted for waiting too long
    answers 408.
    """
    outcome = await service.wait_for_match(user_id, timeout)
    if outcome is None:
        return {"user_id": user_id, "status": "searching"}
    return outcome.model_dump()


@router.get("/stats", response_model=QueueStats)
async def get_queue_stats(service: MatchmakingService = Depends(get_matchmaking_service)):
    return await service.queue_stats()


@router.post("/run", response_model=TickReport)
async def run_matchmaking(service: MatchmakingService = Depends(get_matchmaking_service)):
    """Run one matchmaking tick now."""
    matchmaking_logger.info("Manual matchmaking tick requested")
    return await service.run_once()


@router.websocket("/ws/{user_id}")
async def websocket_endpoint(websocket: WebSocket, user_id: str):
    """
    WebSocket endpoint for real-time matchmaking notifications.
    """
    matchmaking_logger.info(f"WebSocket connection request for user ID: {user_id}")

    try:
        await manager.connect(websocket, user_id)
        try:
            while True:
                # Keeps the connection open, client messages are ignored
                data = await websocket.receive_text()
                matchmaking_logger.debug(f"Received message from user {user_id}: {data}")
        except WebSocketDisconnect:
            matchmaking_logger.info(f"WebSocket disconnected for user ID: {user_id}")
            manager.disconnect(websocket, user_id)
    except Exception as e:
        matchmaking_logger.error(f"WebSocket error for user {user_id}: {str(e)}")
        manager.disconnect(websocket, user_id)
        if websocket.client_state == websocket.client_state.CONNECTED:
            await websocket.close(code=1011, reason="Internal server error")
