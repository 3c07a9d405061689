"""
本地缓存

读取故障转移的最底层。以 JSON 文件保存最近一次成功持久化（或读取）的记录，
进程重启后依然可用。
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from ..core.types import CredentialRecord, CredentialSource, RecordOrigin, parse_timestamp, utcnow

logger = logging.getLogger(__name__)


class LocalCache:
    """
    本地缓存

    文件内容:
        {
            "bearer_token": "...",
            "token_updated": "2024-01-01T00:00:00.000Z",
            "token_source": "direct_fetch"
        }

    使用示例:
        cache = LocalCache("./data/token_relay/local_cache.json")
        cache.save(record)
        record = cache.load()
    """

    def __init__(self, path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    # ==================== 基本操作 ====================

    def save(self, record: CredentialRecord) -> None:
        """
        保存记录（原子替换，并发写入时以最后一次为准）

        失败时抛出 OSError，由调用方决定是否忽略。
        """
        data = self._serialize(record)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".cache-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"[LocalCache] 已保存: {self.path}")

    def load(self) -> Optional[CredentialRecord]:
        """
        加载记录

        Returns:
            带 origin=LOCAL_CACHE 的记录；不存在或内容损坏时返回 None
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[LocalCache] 加载失败: {e}")
            return None

        return self._deserialize(data)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    # ==================== 序列化 ====================

    def _serialize(self, record: CredentialRecord) -> dict:
        return {
            "bearer_token": record.value,
            "token_updated": record.updated_at,
            "token_source": record.source_label,
        }

    def _deserialize(self, data: dict) -> Optional[CredentialRecord]:
        if not isinstance(data, dict):
            return None

        token = data.get("bearer_token")
        if not token:
            return None

        label = data.get("token_source") or CredentialSource.CACHE.value
        return CredentialRecord(
            value=token,
            captured_at=parse_timestamp(data.get("token_updated")) or utcnow(),
            source=CredentialSource.parse(label),
            origin=RecordOrigin.LOCAL_CACHE,
            label=label,
        )
