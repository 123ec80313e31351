from .database import get_session, init_db, session_factory
from .match_repository import create_match, get_match_by_id
from .problem import select_problem_for_match
from .queue_store import InMemoryQueueStore, QueueStore
from .redis import create_redis_client
from .redis_queue_store import RedisQueueStore
from .user_repository import get_user_by_id, get_user_rating

__all__ = [
    "get_session",
    "init_db",
    "session_factory",
    "create_match",
    "get_match_by_id",
    "select_problem_for_match",
    "QueueStore",
    "InMemoryQueueStore",
    "RedisQueueStore",
    "create_redis_client",
    "get_user_by_id",
    "get_user_rating",
]
