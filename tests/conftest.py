"""
共享 fixture

远程服务用 httpx.MockTransport 模拟；浏览器一侧用实现了桥接与辅助上下文接口的内存类模拟。
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from token_relay.core.config import RelayConfig
from token_relay.extraction.auxiliary import AuxiliaryContext, AuxiliaryContextManager, ScrapeReply
from token_relay.extraction.bridge import BrowserBridge
from token_relay.extraction.identity import IdentityProvider
from token_relay.extraction.pattern import TokenPattern
from token_relay.extraction.strategies import ScrapeContext
from token_relay.storage.backends import DocumentStoreBackend, KeyValueBackend
from token_relay.storage.failover import ReadPathFailover
from token_relay.storage.local_cache import LocalCache
from token_relay.storage.persistence import DualBackendPersistence

PRIMARY_HOST = "firestore.googleapis.com"
BACKUP_HOST = "kv.test"
TARGET_HOST = "labs.google"
DASHBOARD = "https://dashboard.test"


def make_token(length: int = 120, fill: str = "A") -> str:
    """令牌格式的字符串，前缀之后有 length 个字符"""
    return "ya29." + fill * length


def json_response(status: int, data: Any) -> httpx.Response:
    """None 序列化为字面量 null，与真实服务一致"""
    return httpx.Response(status, content=json.dumps(data).encode(), headers={"content-type": "application/json"})


class FakeRemote:
    """内存中的主/备后端、目标页面与注入数据接口"""

    def __init__(self):
        self.primary_doc: Optional[dict] = None
        self.backup_doc: Optional[dict] = None
        self.primary_up = True
        self.backup_up = True
        self.primary_status: Optional[int] = None
        self.target_html = "<html><body>nothing here</body></html>"
        self.target_status = 200
        self.injection_status = 200
        self.injection_body: Any = {"tool": {"targetUrl": "https://tool.test/app"}}
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host

        if host == PRIMARY_HOST:
            if not self.primary_up:
                raise httpx.ConnectError("primary unreachable", request=request)
            if self.primary_status:
                return httpx.Response(self.primary_status, json={"error": "boom"})
            if request.method == "PATCH":
                self.primary_doc = json.loads(request.content)
                return json_response(200, self.primary_doc)
            if self.primary_doc is None:
                return httpx.Response(404, json={"error": {"status": "NOT_FOUND"}})
            return json_response(200, self.primary_doc)

        if host == BACKUP_HOST:
            if not self.backup_up:
                raise httpx.ConnectError("backup unreachable", request=request)
            if request.method == "PUT":
                self.backup_doc = json.loads(request.content)
                return json_response(200, self.backup_doc)
            return json_response(200, self.backup_doc)

        if host == TARGET_HOST:
            return httpx.Response(self.target_status, text=self.target_html)

        if host == "dashboard.test":
            return json_response(self.injection_status, self.injection_body)

        return httpx.Response(404)

    def requests_to(self, host: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host and (method is None or r.method == method)
        ]


class FakeAuxContext(AuxiliaryContext):
    def __init__(
        self,
        replies: Optional[List[ScrapeReply]] = None,
        frame_reply: Any = None,
        logged_in: bool = True,
        scrape_delay: float = 0.0,
    ):
        self.replies = list(replies or [ScrapeReply(error="No token in page")])
        self.frame_reply = frame_reply
        self.logged_in = logged_in
        self.scrape_delay = scrape_delay
        self.scrape_calls = 0
        self.frame_calls = 0
        self.closed = False

    async def scrape(self) -> ScrapeReply:
        self.scrape_calls += 1
        if self.scrape_delay:
            await asyncio.sleep(self.scrape_delay)
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    async def scrape_frame(self) -> ScrapeReply:
        self.frame_calls += 1
        if isinstance(self.frame_reply, Exception):
            raise self.frame_reply
        return self.frame_reply or ScrapeReply(error="Could not extract token from frame")

    async def check_login(self) -> bool:
        return self.logged_in

    async def close(self) -> None:
        self.closed = True


class FakeAuxFactory:
    """记录创建了多少次上下文"""

    def __init__(self, context: Optional[FakeAuxContext] = None, delay: float = 0.0, fail: bool = False):
        self.context = context or FakeAuxContext()
        self.delay = delay
        self.fail = fail
        self.calls = 0

    async def __call__(self) -> FakeAuxContext:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("cannot create context")
        return self.context


class FakeBrowser(BrowserBridge):
    def __init__(self, pages: Optional[Dict[str, str]] = None, cookies: Optional[Dict[str, str]] = None):
        self.pages = pages or {}
        self.cookies = cookies or {}
        self.added: List[dict] = []
        self.opened: List[str] = []
        self.reject_cookies: set = set()
        self.fail_open = False
        self.nav_callback: Optional[Callable[[str], None]] = None

    async def pages_html(self, origin: str) -> List[str]:
        return [html for url, html in self.pages.items() if url.startswith(origin)]

    async def cookies_for(self, url: str) -> Dict[str, str]:
        return dict(self.cookies)

    async def add_cookie(self, cookie: Dict[str, Any]) -> None:
        if cookie["name"] in self.reject_cookies:
            raise ValueError(f"rejected {cookie['name']}")
        self.added.append(cookie)

    async def open_url(self, url: str) -> None:
        if self.fail_open:
            raise RuntimeError("browser closed")
        self.opened.append(url)

    async def watch_navigation(self, callback: Callable[[str], None]) -> None:
        self.nav_callback = callback


class FakeIdentity(IdentityProvider):
    def __init__(self, token: Optional[str] = None):
        self.token = token
        self.calls: List[bool] = []

    async def get_token(self, interactive: bool = False) -> Optional[str]:
        self.calls.append(interactive)
        return self.token


@pytest.fixture
def config(tmp_path):
    return RelayConfig(
        primary_project_id="relay-test",
        primary_document_path="tokens/current",
        backup_base_url=f"https://{BACKUP_HOST}",
        backup_path="tokens/current",
        data_dir=tmp_path / "data",
        existing_surface_timeout=0.5,
        auxiliary_timeout=0.5,
        direct_fetch_timeout=0.5,
        frame_timeout=0.5,
        identity_retry_timeout=0.5,
        backend_timeout=0.5,
        startup_delay=0.0,
        install_delay=0.0,
        navigation_delay=0.0,
    )


@pytest.fixture
def remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def http(remote):
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote.handler)) as client:
        yield client


@pytest.fixture
def pattern(config):
    return TokenPattern.from_config(config)


@pytest.fixture
def cache(config):
    return LocalCache(config.local_cache_path)


@pytest.fixture
def primary(config, http):
    return DocumentStoreBackend(config, http)


@pytest.fixture
def backup(config, http):
    return KeyValueBackend(config, http)


@pytest.fixture
def persistence(primary, backup, cache):
    return DualBackendPersistence(primary, backup, cache)


@pytest.fixture
def failover(primary, backup, cache):
    return ReadPathFailover([primary, backup], cache)


@pytest.fixture
def aux_context():
    return FakeAuxContext()


@pytest.fixture
def aux_factory(aux_context):
    return FakeAuxFactory(aux_context)


@pytest.fixture
def auxiliary(aux_factory):
    return AuxiliaryContextManager(aux_factory)


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def scrape_context(config, pattern, auxiliary, http, identity, browser):
    return ScrapeContext(
        config=config,
        pattern=pattern,
        auxiliary=auxiliary,
        http=http,
        identity=identity,
        browser=browser,
    )
