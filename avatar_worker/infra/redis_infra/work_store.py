"""
Redis-backed work unit store.

Thumbnail jobs live in a list. Claiming moves the head into a processing
list so a crashed run leaves the job recoverable; mark-applied removes it.

Serve time accumulates in ``avatar_serve_{id}`` counters. Claiming renames a
counter to a unique claimed key, so two drainers can never take the same
amount. Applying adds the amount to the avatar total and sets an expiring
marker for the claim token in the same transaction, which makes re-applying
the same claim a no-op.
"""
import uuid
from typing import Iterable, List, Optional
import redis.asyncio as redis
from redis.exceptions import RedisError, ResponseError, WatchError
from avatar_worker import config
from avatar_worker.app.models import ApplyResult, WorkKind, WorkUnit
from avatar_worker.errors import StoreError
from avatar_worker.utils import get_logger

logger = get_logger(__name__)

AVATAR_KEY_PREFIX = "avatar:"
THUMBS_KEY_PREFIX = "avatar_thumbs:"
THUMB_COUNT_CACHE_PREFIX = "avatar_thumb_count:"
SERVE_CLAIMED_PREFIX = "serve_time_claimed:"
SERVE_APPLIED_PREFIX = "serve_time_applied:"
AVATAR_ID_PREFIX = "a-"


class RedisWorkUnitStore:
    def __init__(
        self,
        client: redis.Redis,
        thumbnail_queue: str = "",
        processing_queue: str = "",
        serve_key_prefix: str = "",
        thumb_cache_ttl: Optional[int] = None,
        applied_ttl: Optional[int] = None,
    ):
        self.client = client
        self.thumbnail_queue = thumbnail_queue or config.THUMBNAIL_QUEUE_NAME
        self.processing_queue = processing_queue or config.THUMBNAIL_PROCESSING_QUEUE_NAME
        self.serve_key_prefix = serve_key_prefix or config.SERVE_TIME_KEY_PREFIX
        self.thumb_cache_ttl = thumb_cache_ttl or config.THUMB_COUNT_CACHE_TTL
        self.applied_ttl = applied_ttl or config.SERVE_TIME_APPLIED_TTL

    # -- drain contract ---------------------------------------------------

    async def claim_next(self, kind: WorkKind) -> Optional[WorkUnit]:
        try:
            if kind == WorkKind.THUMBNAIL_COUNT:
                return await self._claim_thumbnail_job()
            if kind == WorkKind.SERVE_TIME:
                return await self._claim_serve_time()
        except RedisError as e:
            raise StoreError(f"Failed to claim {kind.value} unit: {e}") from e
        raise ValueError(f"Unsupported work kind: {kind}")

    async def apply_effect(self, unit: WorkUnit) -> ApplyResult:
        try:
            if unit.kind == WorkKind.THUMBNAIL_COUNT:
                return await self._apply_thumb_count(unit.subject_id)
            return await self._apply_serve_time(unit)
        except RedisError as e:
            logger.error(f"Redis error applying {unit.kind.value} for {unit.subject_id}: {e}")
            return ApplyResult(success=False, message=f"Redis error: {e}")

    async def mark_applied(self, unit: WorkUnit) -> None:
        try:
            if unit.kind == WorkKind.THUMBNAIL_COUNT:
                await self.client.lrem(self.processing_queue, 1, unit.unit_id)
            else:
                await self.client.delete(unit.unit_id)
        except RedisError as e:
            raise StoreError(f"Failed to release {unit.kind.value} unit {unit.unit_id}: {e}") from e

    async def release_claim(self, unit: WorkUnit) -> None:
        """Return a claimed unit so the next drain picks it up again.

        Serve time already applied under this claim's token is not returned,
        only the claimed key is dropped.
        """
        try:
            if unit.kind == WorkKind.THUMBNAIL_COUNT:
                async with self.client.pipeline(transaction=True) as pipe:
                    pipe.lrem(self.processing_queue, 1, unit.unit_id)
                    pipe.lpush(self.thumbnail_queue, unit.subject_id)
                    await pipe.execute()
                return

            if await self.client.exists(f"{SERVE_APPLIED_PREFIX}{unit.payload['token']}"):
                await self.client.delete(unit.unit_id)
                return
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.incrby(f"{self.serve_key_prefix}{unit.subject_id}", int(unit.payload.get("seconds", 0)))
                pipe.delete(unit.unit_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Failed to return {unit.kind.value} unit {unit.unit_id}: {e}") from e

    # -- producers --------------------------------------------------------

    async def queue_thumbnail_jobs(self, avatar_ids: Iterable[str]) -> int:
        """Queue thumb-count jobs for the given avatars.

        Returns:
            Number of jobs queued (duplicates are collapsed).

        Raises:
            ValueError: If the list is empty or holds a malformed avatar id.
        """
        ids = list(avatar_ids)
        if not ids:
            raise ValueError("No avatar IDs provided")
        invalid = [i for i in ids if not isinstance(i, str) or not i.startswith(AVATAR_ID_PREFIX)]
        if invalid:
            raise ValueError(f"Invalid avatar IDs provided: {invalid}")

        unique_ids = list(dict.fromkeys(ids))
        await self.client.rpush(self.thumbnail_queue, *unique_ids)
        logger.info(f"Queued {len(unique_ids)} avatar(s) for thumb count update")
        return len(unique_ids)

    async def add_thumb(self, user_id: str, avatar_id: str) -> bool:
        added = await self.client.sadd(f"{THUMBS_KEY_PREFIX}{avatar_id}", user_id)
        if added:
            await self.client.rpush(self.thumbnail_queue, avatar_id)
        return bool(added)

    async def remove_thumb(self, user_id: str, avatar_id: str) -> bool:
        removed = await self.client.srem(f"{THUMBS_KEY_PREFIX}{avatar_id}", user_id)
        if removed:
            await self.client.rpush(self.thumbnail_queue, avatar_id)
        return bool(removed)

    async def record_serve_time(self, avatar_id: str, seconds: int) -> int:
        """Add served seconds to the avatar's pending counter."""
        return await self.client.incrby(f"{self.serve_key_prefix}{avatar_id}", seconds)

    # -- reads ------------------------------------------------------------

    async def get_thumb_count(self, avatar_id: str) -> int:
        cached = await self.client.get(f"{THUMB_COUNT_CACHE_PREFIX}{avatar_id}")
        if cached is not None:
            return int(cached)
        return int(await self.client.scard(f"{THUMBS_KEY_PREFIX}{avatar_id}"))

    async def get_serve_time(self, avatar_id: str) -> int:
        value = await self.client.hget(f"{AVATAR_KEY_PREFIX}{avatar_id}", "serve_time")
        return int(value or 0)

    # -- recovery ---------------------------------------------------------

    async def recover_stale_claims(self) -> int:
        """Recover units left claimed by a crashed run.

        Thumbnail jobs go back to the queue. Claimed serve time is applied
        again under its original token and released. Safe alongside running
        drains: a unit taken from under one is applied twice at most, and
        both effects are idempotent.
        """
        recovered = 0
        while await self.client.lmove(self.processing_queue, self.thumbnail_queue, "RIGHT", "LEFT") is not None:
            recovered += 1

        claimed_keys: List[str] = [k async for k in self.client.scan_iter(match=f"{SERVE_CLAIMED_PREFIX}*")]
        for claimed_key in claimed_keys:
            unit = await self._load_serve_claim(claimed_key)
            if unit is None:
                continue
            result = await self.apply_effect(unit)
            if result.success:
                await self.mark_applied(unit)
                recovered += 1
            else:
                logger.warning(f"Could not recover serve time claim {claimed_key}: {result.message}")

        if recovered:
            logger.info(f"Recovered {recovered} stale claim(s)")
        return recovered

    # -- internals --------------------------------------------------------

    async def _claim_thumbnail_job(self) -> Optional[WorkUnit]:
        avatar_id = await self.client.lmove(self.thumbnail_queue, self.processing_queue, "LEFT", "RIGHT")
        if avatar_id is None:
            return None
        return WorkUnit(subject_id=avatar_id, kind=WorkKind.THUMBNAIL_COUNT, unit_id=avatar_id)

    async def _claim_serve_time(self) -> Optional[WorkUnit]:
        async for key in self.client.scan_iter(match=f"{self.serve_key_prefix}*"):
            avatar_id = key[len(self.serve_key_prefix):]
            claimed_key = f"{SERVE_CLAIMED_PREFIX}{avatar_id}:{uuid.uuid4().hex}"
            try:
                await self.client.rename(key, claimed_key)
            except ResponseError:
                # claimed by a concurrent drain between scan and rename
                continue
            return await self._load_serve_claim(claimed_key)
        return None

    async def _load_serve_claim(self, claimed_key: str) -> Optional[WorkUnit]:
        raw = await self.client.get(claimed_key)
        if raw is None:
            return None
        avatar_id, token = claimed_key[len(SERVE_CLAIMED_PREFIX):].rsplit(":", 1)
        return WorkUnit(
            subject_id=avatar_id,
            kind=WorkKind.SERVE_TIME,
            unit_id=claimed_key,
            payload={"seconds": int(raw), "token": token},
        )

    async def _apply_thumb_count(self, avatar_id: str) -> ApplyResult:
        count = int(await self.client.scard(f"{THUMBS_KEY_PREFIX}{avatar_id}"))
        await self.client.hset(f"{AVATAR_KEY_PREFIX}{avatar_id}", "thumb_count", count)
        await self.client.set(f"{THUMB_COUNT_CACHE_PREFIX}{avatar_id}", count, ex=self.thumb_cache_ttl)
        return ApplyResult(success=True, message=f"Updated thumb count to {count}", result_value=count)

    async def _apply_serve_time(self, unit: WorkUnit) -> ApplyResult:
        seconds = int(unit.payload.get("seconds", 0))
        if seconds == 0:
            return ApplyResult(success=True, message="No serve time to flush", result_value=0)

        avatar_key = f"{AVATAR_KEY_PREFIX}{unit.subject_id}"
        marker_key = f"{SERVE_APPLIED_PREFIX}{unit.payload['token']}"
        while True:
            async with self.client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(marker_key)
                    if await pipe.exists(marker_key):
                        total = int(await pipe.hget(avatar_key, "serve_time") or 0)
                        return ApplyResult(
                            success=True,
                            message=f"Serve time claim already applied (total {total}s)",
                            result_value=total,
                        )
                    pipe.multi()
                    pipe.hincrby(avatar_key, "serve_time", seconds)
                    pipe.set(marker_key, seconds, ex=self.applied_ttl)
                    total, _ = await pipe.execute()
                except WatchError:
                    # the same claim was applied concurrently; re-check the marker
                    continue
            return ApplyResult(
                success=True,
                message=f"Flushed {seconds}s of serve time (total {total}s)",
                result_value=int(total),
            )
