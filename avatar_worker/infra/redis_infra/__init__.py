"""
Redis infrastructure - connection handling and the work unit store.
"""

from avatar_worker.infra.redis_infra.redis_client import RedisClient, create_redis_client
from avatar_worker.infra.redis_infra.work_store import RedisWorkUnitStore

__all__ = ['RedisClient', 'create_redis_client', 'RedisWorkUnitStore']
