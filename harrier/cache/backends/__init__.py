from .memory import MemoryCacheStore
from .redis import RedisCacheStore

__all__ = ["MemoryCacheStore", "RedisCacheStore"]
