"""
双后端持久化

同时向主、备两个后端写入，一方失败不影响另一方；无论远程结果如何都写入本地缓存。
"""

import asyncio
import logging

from ..core.types import CredentialRecord, PersistenceOutcome, mask_token
from .backends import CredentialBackend
from .local_cache import LocalCache

logger = logging.getLogger(__name__)


class DualBackendPersistence:
    """
    双后端写入

    使用示例:
        persistence = DualBackendPersistence(primary, backup, cache)
        outcome = await persistence.write(record)
        if not outcome.succeeded:
            ...  # 两个后端都失败，本地缓存仍已更新
    """

    def __init__(self, primary: CredentialBackend, backup: CredentialBackend, cache: LocalCache):
        self.primary = primary
        self.backup = backup
        self.cache = cache

    async def write(self, record: CredentialRecord) -> PersistenceOutcome:
        # 两个写入都先发起，再统一等待；return_exceptions 保证互不取消
        primary_result, backup_result = await asyncio.gather(
            self.primary.write(record),
            self.backup.write(record),
            return_exceptions=True,
        )

        primary_ok = self._check(self.primary, primary_result)
        backup_ok = self._check(self.backup, backup_result)

        try:
            self.cache.save(record)
        except OSError as e:
            logger.error(f"[Persistence] 本地缓存写入失败: {e}")

        outcome = PersistenceOutcome.from_flags(primary_ok, backup_ok)
        if outcome.succeeded:
            logger.info(f"[Persistence] {mask_token(record.value)} -> {outcome.value}")
        else:
            logger.error(f"[Persistence] 两个后端均写入失败: {mask_token(record.value)}")
        return outcome

    def _check(self, backend: CredentialBackend, result) -> bool:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning(f"[Persistence] {backend.name} 写入失败: {result}")
            return False
        return True
