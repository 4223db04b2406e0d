"""
Infrastructure layer - External dependencies and adapters.

This package contains all infrastructure-related modules:
- redis_infra: Redis connection and the Redis-backed work unit store
"""
