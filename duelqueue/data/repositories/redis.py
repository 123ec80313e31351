from redis.asyncio import Redis

from duelqueue.config import Config, logger
from duelqueue.errors import DatabaseException

redis_logger = logger.getChild("redis")


async def create_redis_client() -> Redis:
    """
    Connect to the Redis instance backing the shared matchmaking queue.
    """
    client = Redis(
        host=Config.REDIS_HOST,
        port=Config.REDIS_PORT,
        db=0,
        password=Config.REDIS_PASSWORD or None,
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception as e:
        redis_logger.error(f"Redis connection error: {str(e)}")
        await client.aclose()
        raise DatabaseException(detail=f"Redis connection error: {str(e)}")
    redis_logger.info(f"Connected to Redis at {Config.REDIS_HOST}:{Config.REDIS_PORT}")
    return client
