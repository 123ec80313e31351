from typing import Optional

from duelqueue.business.matchmaking import (
    MatchmakingDriver,
    OutcomeBroker,
    PairingCommitter,
    PlayerNotifier,
    ProximityMatcher,
    RangeEscalationPolicy,
)
from duelqueue.config import Config, logger
from duelqueue.data.repositories import (
    InMemoryQueueStore,
    QueueStore,
    RedisQueueStore,
    create_redis_client,
    session_factory,
)

from .collaborators import ProblemPuzzleGenerator, SqlMatchCreator, SqlRatingProvider
from .matchmaking import MatchmakingService

factory_logger = logger.getChild("matchmaking.factory")


async def create_queue_store(backend: Optional[str] = None) -> QueueStore:
    backend = backend or Config.QUEUE_BACKEND
    if backend == "memory":
        return InMemoryQueueStore(mode_switch_policy=Config.QUEUE_MODE_SWITCH_POLICY)
    if backend == "redis":
        redis = await create_redis_client()
        return RedisQueueStore(
            redis,
            prefix=Config.REDIS_KEY_PREFIX,
            mode_switch_policy=Config.QUEUE_MODE_SWITCH_POLICY,
        )
    raise ValueError(f"Unknown queue backend: {backend}")


async def build_matchmaking(
    store: Optional[QueueStore] = None,
    notify_player: Optional[PlayerNotifier] = None,
    rating_provider=None,
    create_match=None,
    generate_puzzle=None,
) -> MatchmakingService:
    """
    Wire the matchmaking engine from configuration.

    Collaborators that are not given fall back to the database backed ones.
    The driver is returned idle, starting it is up to the caller.
    """
    store = store or await create_queue_store()
    policy = RangeEscalationPolicy(
        steps=Config.RATING_RANGE_STEPS,
        desperation_timeout=Config.DESPERATION_TIMEOUT_SECONDS,
    )
    broker = OutcomeBroker(
        notify_player=notify_player, retention=Config.OUTCOME_RETENTION_SECONDS
    )
    committer = PairingCommitter(
        store,
        create_match=create_match or SqlMatchCreator(session_factory),
        generate_puzzle=generate_puzzle or ProblemPuzzleGenerator(session_factory),
        broker=broker,
        max_creation_failures=Config.MATCH_CREATION_MAX_FAILURES,
    )
    driver = MatchmakingDriver(
        store,
        ProximityMatcher(policy, close_range=Config.CLOSE_RANGE),
        committer,
        broker=broker,
        modes=Config.MATCHMAKING_MODES,
        tick_interval=Config.MATCHMAKING_TICK_SECONDS,
        max_wait=Config.MAX_WAIT_SECONDS,
    )
    factory_logger.info(
        f"Matchmaking built with {type(store).__name__} for modes "
        f"{', '.join(Config.MATCHMAKING_MODES)}"
    )
    return MatchmakingService(
        store,
        driver,
        broker,
        policy,
        rating_provider=rating_provider or SqlRatingProvider(session_factory),
        modes=Config.MATCHMAKING_MODES,
        close_range=Config.CLOSE_RANGE,
    )
