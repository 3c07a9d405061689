"""统一入口

    python -m token_relay serve          # 启动本地服务与后台刷新
    python -m token_relay scrape         # 立即提取一次
    python -m token_relay get            # 读取当前令牌
"""

import argparse
import asyncio
import json
import logging

from .core.config import RelayConfig
from .service import RelayService


async def _run_once(config: RelayConfig, message: dict) -> dict:
    service = RelayService.build(config)
    try:
        return await service.dispatcher.handle_message(message)
    finally:
        await service.close()


def main(argv=None):
    """命令行入口"""
    parser = argparse.ArgumentParser(prog="token-relay", description="token-relay - 凭据获取与中继")
    parser.add_argument("--verbose", "-v", action="store_true", help="输出调试日志")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="启动本地服务")
    serve_parser.add_argument("--host", default=None, help="监听地址")
    serve_parser.add_argument("--port", type=int, default=None, help="监听端口")

    sub.add_parser("scrape", help="立即提取一次")
    sub.add_parser("get", help="读取当前令牌")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
    )

    config = RelayConfig.from_env()

    if args.command == "serve":
        from .server import serve

        serve(RelayService.build(config), host=args.host, port=args.port)
        return 0

    message = {"type": "SCRAPE_TOKEN" if args.command == "scrape" else "GET_TOKEN"}
    response = asyncio.run(_run_once(config, message))
    print(json.dumps(response, ensure_ascii=False, indent=2))
    return 0 if response.get("success") else 1


if __name__ == "__main__":
    raise SystemExit(main())
