"""
读取故障转移

主后端 → 备份后端 → 本地缓存，返回第一个成功的结果并标注来源层级。
远程读取成功时回写本地缓存（read-repair）。
"""

import logging
from typing import Sequence

from ..core.errors import BackendError, TerminalFailure
from ..core.types import CredentialRecord
from .backends import CredentialBackend
from .local_cache import LocalCache

logger = logging.getLogger(__name__)


class ReadPathFailover:
    """按顺序读取各层存储"""

    def __init__(self, backends: Sequence[CredentialBackend], cache: LocalCache):
        self.backends = list(backends)
        self.cache = cache

    async def read(self) -> CredentialRecord:
        """
        读取当前凭据

        Returns:
            记录，origin 标注命中的层级

        Raises:
            TerminalFailure: 所有层级均未命中
        """
        for backend in self.backends:
            try:
                record = await backend.read()
            except BackendError as e:
                logger.info(f"[Failover] {backend.name} 读取失败，尝试下一层: {e.reason}")
                continue

            self._repair(record)
            return record.with_origin(backend.origin)

        record = self.cache.load()
        if record is not None:
            logger.info("[Failover] 使用本地缓存")
            return record

        raise TerminalFailure("Token not found in any source")

    def _repair(self, record: CredentialRecord) -> None:
        try:
            self.cache.save(record)
        except OSError as e:
            logger.warning(f"[Failover] 回写本地缓存失败: {e}")
