"""
工具启动 - Cookie 注入

工作流程：
1. 用调用方提供的会话令牌请求注入数据接口
2. 把返回的 Cookie 逐个写入浏览器 Cookie 存储（单个失败忽略，只计数）
3. 打开解析出的目标地址

接口整体失败时，仍然打开调用方提供的原始地址，不阻塞用户。
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ..core.config import RelayConfig
from ..core.errors import BrowserUnavailableError, InjectionEndpointError
from ..core.types import CookieSpec, InjectionReport, ToolInjectionPayload
from ..extraction.bridge import BrowserBridge

logger = logging.getLogger(__name__)


# 浏览器扩展的 sameSite 取值 → Playwright 取值
SAME_SITE_MAP = {
    "no_restriction": "None",
    "none": "None",
    "lax": "Lax",
    "strict": "Strict",
}


def extract_cookies(data: Any) -> List[Dict[str, Any]]:
    """
    从接口响应中取出 Cookie 列表

    支持的格式:
    - [{name, value, ...}, ...]
    - {"cookies": [...]} 或 {"cookies": "<json>"}
    - 文档库文档: {"fields": {"x": {"stringValue": "<json list or {cookies}>"}}}
    """
    if isinstance(data, list):
        return [c for c in data if isinstance(c, dict)]

    if not isinstance(data, dict):
        return []

    if isinstance(data.get("fields"), dict):
        for field in data["fields"].values():
            raw = field.get("stringValue") if isinstance(field, dict) else None
            if not raw:
                continue
            try:
                parsed = json.loads(raw)
            except ValueError:
                continue
            cookies = extract_cookies(parsed)
            if cookies:
                return cookies

    cookies = data.get("cookies")
    if isinstance(cookies, str):
        try:
            cookies = json.loads(cookies)
        except ValueError:
            return []
    if isinstance(cookies, list):
        return [c for c in cookies if isinstance(c, dict)]

    return []


def parse_injection_payload(data: Any) -> ToolInjectionPayload:
    """解析 {tool: {targetUrl, cookies?}}，同时兼容旧格式"""
    tool = data.get("tool") if isinstance(data, dict) else None
    target_url = ""
    raw_cookies: List[Dict[str, Any]] = []

    if isinstance(tool, dict):
        raw_url = tool.get("targetUrl")
        target_url = raw_url if isinstance(raw_url, str) else ""
        raw_cookies = extract_cookies(tool)
    if not raw_cookies:
        raw_cookies = extract_cookies(data)

    cookies = []
    for item in raw_cookies:
        try:
            cookies.append(CookieSpec.from_dict(item))
        except ValueError as e:
            logger.debug(f"[ToolLauncher] 跳过无效 Cookie: {e}")

    return ToolInjectionPayload(target_url=target_url, cookies=cookies)


def to_browser_cookie(spec: CookieSpec, target_url: str) -> Dict[str, Any]:
    """
    转换为 Playwright 格式

    默认值: domain 取目标地址的主机名，path 为 "/"，
    secure 除非显式为 False 否则为 True，httpOnly 仅在显式为 True 时开启。
    """
    path = spec.path or "/"
    cookie: Dict[str, Any] = {
        "name": spec.name,
        "value": spec.value,
        "secure": spec.secure is not False,
        "httpOnly": spec.http_only is True,
    }

    if spec.domain:
        cookie["domain"] = spec.domain
        cookie["path"] = path
    else:
        host = urlparse(target_url).hostname or ""
        cookie["url"] = spec.url or f"https://{host.lstrip('.')}{path}"

    if spec.expiry is not None:
        cookie["expires"] = spec.expiry

    same_site = SAME_SITE_MAP.get(str(spec.same_site).lower()) if spec.same_site else None
    if same_site:
        cookie["sameSite"] = same_site

    return cookie


class ToolLauncher:
    """
    打开工具

    使用示例:
        launcher = ToolLauncher(config, http, bridge)
        report = await launcher.open_tool(
            origin="https://dashboard.example.com",
            tool_id="tool-1",
            id_token="...",
            target_url="https://tool.example.com",
        )
        print(f"{report.applied}/{report.total} cookies")
    """

    def __init__(
        self,
        config: RelayConfig,
        http: httpx.AsyncClient,
        browser: Optional[BrowserBridge] = None,
    ):
        self.config = config
        self.http = http
        self.browser = browser

    async def open_tool(
        self,
        origin: Optional[str],
        tool_id: Optional[str],
        id_token: Optional[str],
        target_url: Optional[str] = None,
    ) -> InjectionReport:
        if not origin or not tool_id:
            # 没有注入接口可调，直接打开
            return await self._open_only(target_url)

        try:
            payload = await self.fetch_payload(origin, tool_id, id_token)
        except InjectionEndpointError as e:
            logger.warning(f"[ToolLauncher] 注入数据获取失败，打开原始地址: {e}")
            report = await self._open_only(target_url)
            report.ok = False
            report.fallback = True
            report.error = str(e) if not report.error else f"{e}; {report.error}"
            return report

        resolved = payload.target_url or target_url
        if not resolved:
            return InjectionReport(ok=False, total=len(payload.cookies), error="No target URL")

        applied = await self.apply_cookies(payload.cookies, resolved)
        report = InjectionReport(ok=True, applied=applied, total=len(payload.cookies))

        error = await self._open(resolved)
        if error:
            report.ok = False
            report.error = error
        else:
            report.opened_url = resolved

        logger.info(f"[ToolLauncher] 工具 {tool_id}: 注入 {applied}/{len(payload.cookies)} 个 Cookie")
        return report

    async def fetch_payload(
        self,
        origin: str,
        tool_id: str,
        id_token: Optional[str],
    ) -> ToolInjectionPayload:
        url = f"{origin.rstrip('/')}{self.config.injection_endpoint_path}"
        headers = {"Authorization": f"Bearer {id_token}"} if id_token else {}

        try:
            response = await self.http.get(
                url,
                params={"toolId": tool_id},
                headers=headers,
                timeout=self.config.injection_timeout,
            )
        except httpx.HTTPError as e:
            raise InjectionEndpointError(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            raise InjectionEndpointError(f"API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise InjectionEndpointError("malformed injection data") from e

        try:
            return parse_injection_payload(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise InjectionEndpointError(f"malformed injection data: {e}") from e

    async def apply_cookies(self, cookies: List[CookieSpec], target_url: str) -> int:
        """逐个写入 Cookie，返回成功数量"""
        applied = 0
        for spec in cookies:
            try:
                await self._require_browser().add_cookie(to_browser_cookie(spec, target_url))
                applied += 1
            except Exception as e:
                logger.debug(f"[ToolLauncher] Cookie {spec.name} 写入失败: {e}")
        return applied

    async def _open_only(self, target_url: Optional[str]) -> InjectionReport:
        if not target_url:
            return InjectionReport(ok=False, error="No target URL")
        error = await self._open(target_url)
        if error:
            return InjectionReport(ok=False, error=error)
        return InjectionReport(ok=True, opened_url=target_url)

    async def _open(self, url: str) -> Optional[str]:
        try:
            await self._require_browser().open_url(url)
        except Exception as e:
            logger.error(f"[ToolLauncher] 打开 {url} 失败: {e}")
            return str(e) or type(e).__name__
        return None

    def _require_browser(self) -> BrowserBridge:
        if self.browser is None:
            raise BrowserUnavailableError("no browser attached")
        return self.browser
