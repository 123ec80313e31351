from typing import Any, Dict, List, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from duelqueue.config import Config, logger
from duelqueue.data.repositories.queue_store import (
    MODE_SWITCH_REJECT,
    QueueStore,
)
from duelqueue.data.schemas import ClaimToken, QueueEntry
from duelqueue.errors import AlreadyQueuedError, DatabaseException, PairingInProgress
from duelqueue.utils.clock import Clock, from_timestamp, utc_now

queue_logger = logger.getChild("queue.redis")

# KEYS: entry, target pool, modes set, insertion counter
# ARGV: user_id, mode, rating, queued_at, switch policy, pool key prefix
ENQUEUE_SCRIPT = """
local existing_mode = redis.call('HGET', KEYS[1], 'mode')
if existing_mode then
  local claim = redis.call('HGET', KEYS[1], 'claim_id')
  if claim and claim ~= '' then
    return {'claimed', existing_mode}
  end
  if existing_mode ~= ARGV[2] then
    if ARGV[5] == 'reject' then
      return {'other_mode', existing_mode}
    end
    local old_pool = ARGV[6] .. existing_mode
    redis.call('ZREM', old_pool, ARGV[1])
    if redis.call('ZCARD', old_pool) == 0 then
      redis.call('SREM', KEYS[3], existing_mode)
    end
  end
end
local seq = redis.call('INCR', KEYS[4])
redis.call('HSET', KEYS[1], 'user_id', ARGV[1], 'mode', ARGV[2],
           'rating', ARGV[3], 'queued_at', ARGV[4], 'claim_id', '', 'seq', seq)
redis.call('ZADD', KEYS[2], ARGV[4], ARGV[1])
redis.call('SADD', KEYS[3], ARGV[2])
return {'ok', ARGV[2]}
"""

# KEYS: entry, modes set
# ARGV: user_id, pool key prefix, expected claim id ('' for an unclaimed entry)
# Returns 1 when removed, 0 when absent or claimed by another token,
# -1 when an unclaimed removal finds the entry claimed.
REMOVE_SCRIPT = """
local mode = redis.call('HGET', KEYS[1], 'mode')
if not mode then
  return 0
end
local claim = redis.call('HGET', KEYS[1], 'claim_id') or ''
if claim ~= ARGV[3] then
  if ARGV[3] == '' then
    return -1
  end
  return 0
end
local pool = ARGV[2] .. mode
redis.call('ZREM', pool, ARGV[1])
if redis.call('ZCARD', pool) == 0 then
  redis.call('SREM', KEYS[2], mode)
end
redis.call('DEL', KEYS[1])
return 1
"""

# KEYS: entry
# ARGV: new claim id
CLAIM_SCRIPT = """
local mode = redis.call('HGET', KEYS[1], 'mode')
if not mode then
  return false
end
local claim = redis.call('HGET', KEYS[1], 'claim_id')
if claim and claim ~= '' then
  return false
end
redis.call('HSET', KEYS[1], 'claim_id', ARGV[1])
return mode
"""

# KEYS: entry
# ARGV: claim id
RELEASE_SCRIPT = """
if redis.call('HGET', KEYS[1], 'claim_id') == ARGV[1] then
  redis.call('HSET', KEYS[1], 'claim_id', '')
  return 1
end
return 0
"""


class RedisQueueStore(QueueStore):
    """
    Queue store shared between processes through Redis.

    Layout, under a configurable prefix:
        {prefix}:pool:{mode}     sorted set, member user_id, score queued_at
        {prefix}:entry:{user_id} hash with the entry fields and claim_id
        {prefix}:modes           set of modes with waiting players
        {prefix}:seq             insertion counter, orders identical timestamps

    Each mutating operation is a single Lua script, so it executes atomically
    on the server.
    """

    def __init__(
        self,
        redis: Redis,
        prefix: str = None,
        clock: Clock = utc_now,
        mode_switch_policy: str = MODE_SWITCH_REJECT,
    ):
        super().__init__(clock=clock, mode_switch_policy=mode_switch_policy)
        self.redis = redis
        self.prefix = prefix or Config.REDIS_KEY_PREFIX
        self._enqueue = redis.register_script(ENQUEUE_SCRIPT)
        self._remove = redis.register_script(REMOVE_SCRIPT)
        self._claim = redis.register_script(CLAIM_SCRIPT)
        self._release = redis.register_script(RELEASE_SCRIPT)

    def _pool_prefix(self) -> str:
        return f"{self.prefix}:pool:"

    def _pool_key(self, mode: str) -> str:
        return f"{self._pool_prefix()}{mode}"

    def _entry_key(self, user_id: str) -> str:
        return f"{self.prefix}:entry:{user_id}"

    def _modes_key(self) -> str:
        return f"{self.prefix}:modes"

    def _seq_key(self) -> str:
        return f"{self.prefix}:seq"

    @staticmethod
    def _entry_from_hash(data: Dict[str, Any]) -> Optional[QueueEntry]:
        if not data or "mode" not in data:
            return None
        return QueueEntry(
            user_id=data["user_id"],
            mode=data["mode"],
            rating=int(data["rating"]),
            queued_at=from_timestamp(float(data["queued_at"])),
            claim_id=data.get("claim_id") or None,
        )

    async def enqueue(self, user_id: str, mode: str, rating: int) -> QueueEntry:
        queued_at = self.clock()
        try:
            status, current_mode = await self._enqueue(
                keys=[
                    self._entry_key(user_id),
                    self._pool_key(mode),
                    self._modes_key(),
                    self._seq_key(),
                ],
                args=[
                    user_id,
                    mode,
                    rating,
                    queued_at.timestamp(),
                    self.mode_switch_policy,
                    self._pool_prefix(),
                ],
            )
        except RedisError as e:
            queue_logger.error(f"Redis enqueue failed for player {user_id}: {str(e)}")
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")

        if status == "claimed":
            raise AlreadyQueuedError(
                user_id,
                current_mode,
                detail="A match is already being set up for this player",
            )
        if status == "other_mode":
            raise AlreadyQueuedError(user_id, current_mode)

        queue_logger.info(f"Player {user_id} queued in {mode} with rating {rating}")
        return QueueEntry(user_id=user_id, rating=rating, mode=mode, queued_at=queued_at)

    async def dequeue(self, user_id: str) -> bool:
        try:
            removed = await self._remove(
                keys=[self._entry_key(user_id), self._modes_key()],
                args=[user_id, self._pool_prefix(), ""],
            )
        except RedisError as e:
            queue_logger.error(f"Redis dequeue failed for player {user_id}: {str(e)}")
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        if removed == -1:
            raise PairingInProgress(user_id)
        return removed == 1

    async def snapshot(self, mode: str) -> List[QueueEntry]:
        try:
            user_ids = await self.redis.zrange(self._pool_key(mode), 0, -1)
            if not user_ids:
                return []
            pipe = self.redis.pipeline(transaction=False)
            for user_id in user_ids:
                pipe.hgetall(self._entry_key(user_id))
            rows = await pipe.execute()
        except RedisError as e:
            queue_logger.error(f"Redis snapshot failed for mode {mode}: {str(e)}")
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")

        ordered = []
        for row in rows:
            entry = self._entry_from_hash(row)
            # Entries removed between ZRANGE and HGETALL are skipped
            if entry is not None and entry.mode == mode:
                ordered.append((entry.queued_at, int(row.get("seq") or 0), entry))
        ordered.sort(key=lambda item: item[:2])
        return [entry for _, _, entry in ordered]

    async def get(self, user_id: str) -> Optional[QueueEntry]:
        try:
            data = await self.redis.hgetall(self._entry_key(user_id))
        except RedisError as e:
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        return self._entry_from_hash(data)

    async def modes(self) -> List[str]:
        try:
            members = await self.redis.smembers(self._modes_key())
        except RedisError as e:
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        return sorted(members)

    async def try_claim(self, user_id: str) -> Optional[ClaimToken]:
        claim_id = self.new_claim_id()
        try:
            mode = await self._claim(keys=[self._entry_key(user_id)], args=[claim_id])
        except RedisError as e:
            queue_logger.error(f"Redis claim failed for player {user_id}: {str(e)}")
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        if not mode:
            return None
        return ClaimToken(user_id=user_id, mode=mode, claim_id=claim_id)

    async def release(self, token: ClaimToken) -> bool:
        try:
            released = await self._release(
                keys=[self._entry_key(token.user_id)], args=[token.claim_id]
            )
        except RedisError as e:
            queue_logger.error(
                f"Redis release failed for player {token.user_id}: {str(e)}"
            )
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        return bool(released)

    async def remove(self, token: ClaimToken) -> bool:
        try:
            removed = await self._remove(
                keys=[self._entry_key(token.user_id), self._modes_key()],
                args=[token.user_id, self._pool_prefix(), token.claim_id],
            )
        except RedisError as e:
            queue_logger.error(
                f"Redis remove failed for player {token.user_id}: {str(e)}"
            )
            raise DatabaseException(detail=f"Redis operation failed: {str(e)}")
        return removed == 1
