"""
本地服务 - 把命令分发暴露为 HTTP 接口

接口:
- POST /message  消息请求/响应（与进程内 handle_message 相同）
- GET  /stats    调度统计与辅助上下文状态
- GET  /health   健康检查
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI
from pydantic import BaseModel

from .service import RelayService

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    time: str


class StatsResponse(BaseModel):
    tasks: Dict[str, Dict[str, Any]]
    auxiliary_state: str
    auxiliary_created: int
    refresh_armed: bool


def create_app(service: RelayService, manage_lifecycle: bool = True) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        service: 已组装的服务
        manage_lifecycle: 是否由应用生命周期负责 start()/close()
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await service.close()

    app = FastAPI(title="token-relay", description="凭据获取与中继服务", lifespan=lifespan)

    @app.post("/message")
    async def message(body: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        """处理一条命令消息"""
        return await service.dispatcher.handle_message(body)

    @app.get("/stats", response_model=StatsResponse)
    async def stats():
        """获取统计信息"""
        tasks = service.scheduler.tasks
        return StatsResponse(
            tasks=tasks.stats(),
            auxiliary_state=service.auxiliary.state.value,
            auxiliary_created=service.auxiliary.created_count,
            refresh_armed=tasks.is_armed(service.scheduler.REFRESH_TASK),
        )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """健康检查"""
        return HealthResponse(status="ok", time=datetime.now().isoformat())

    return app


def serve(service: RelayService, host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    host = host or service.config.server_host
    port = port or service.config.server_port
    logger.info(f"[Server] Starting on http://{host}:{port}")
    uvicorn.run(create_app(service), host=host, port=port)
