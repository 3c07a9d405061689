"""
存储模块 - 双后端持久化、读取故障转移、本地缓存
"""

from .backends import CredentialBackend, DocumentStoreBackend, KeyValueBackend
from .failover import ReadPathFailover
from .local_cache import LocalCache
from .persistence import DualBackendPersistence

__all__ = [
    "CredentialBackend",
    "DocumentStoreBackend",
    "KeyValueBackend",
    "LocalCache",
    "DualBackendPersistence",
    "ReadPathFailover",
]
