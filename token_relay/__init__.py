"""
token-relay - 凭据获取、双后端持久化与故障转移读取

核心组件:
- StrategyOrchestrator: 按优先级运行提取策略
- DualBackendPersistence: 主/备后端并发写入 + 本地缓存
- ReadPathFailover: 主 → 备 → 本地缓存 读取
- CommandDispatcher: 对外命令接口
- RefreshScheduler: 启动/安装/周期/导航触发

目录结构:
- core/: 配置、类型、错误
- extraction/: 令牌匹配、提取策略、辅助上下文、浏览器桥接
- storage/: 远程后端、本地缓存、持久化、故障转移
- api/: 编排器、命令分发
- infra/: 调度器、工具启动（Cookie注入）

使用方式:

    # 方式1: 完整服务（需要 playwright）
    from token_relay import RelayService, RelayConfig
    service = RelayService.build(RelayConfig.from_env())

    # 方式2: 单独使用模块
    from token_relay.extraction import TokenPattern
    from token_relay.storage import ReadPathFailover
"""

__version__ = "0.1.0"


# 延迟导入：只有实际使用时才加载依赖 playwright/fastapi 的模块
def __getattr__(name):
    """延迟导入，支持模块按需加载"""

    if name == "RelayConfig":
        from .core.config import RelayConfig
        return RelayConfig

    if name == "RelayService":
        from .service import RelayService
        return RelayService

    if name in ("StrategyOrchestrator", "CommandDispatcher"):
        from . import api
        return getattr(api, name)

    if name in ("DualBackendPersistence", "ReadPathFailover", "LocalCache"):
        from . import storage
        return getattr(storage, name)

    if name in ("RefreshScheduler", "TaskScheduler", "ToolLauncher"):
        from . import infra
        return getattr(infra, name)

    if name == "create_app":
        from .server import create_app
        return create_app

    raise AttributeError(f"module 'token_relay' has no attribute '{name}'")


__all__ = [
    "RelayConfig",
    "RelayService",
    "StrategyOrchestrator",
    "CommandDispatcher",
    "DualBackendPersistence",
    "ReadPathFailover",
    "LocalCache",
    "RefreshScheduler",
    "TaskScheduler",
    "ToolLauncher",
    "create_app",
]
