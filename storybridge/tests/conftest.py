"""Shared pytest configuration and HTTP doubles for storybridge tests."""
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from storybridge.config.models import ConnectorConfig
from storybridge.connectors.shortcut import ShortcutConnector

BASE_URL = "https://api.example.test/api/v3"


class FakeResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body

    async def text(self) -> str:
        return self._body if isinstance(self._body, str) else json.dumps(self._body)

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc) -> None:
        return None


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession. Routes by path prefix (query string
    ignored unless the route key contains '?') and records every GET.
    """

    def __init__(self, routes: Dict[str, List[Tuple[int, Any]]]) -> None:
        self._routes = {k: list(v) for k, v in routes.items()}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def get(self, url, headers=None, **kwargs) -> FakeResponse:
        url = str(url)
        self.calls.append({"url": url, "headers": dict(headers or {})})
        for key, responses in self._routes.items():
            target = url if "?" in key else url.split("?", 1)[0]
            if target.endswith(key):
                if not responses:
                    raise AssertionError(f"Unexpected extra call to {url}")
                return FakeResponse(*responses.pop(0))
        raise AssertionError(f"No fake route for {url}")

    def urls(self, fragment: str) -> List[str]:
        return [c["url"] for c in self.calls if fragment in c["url"]]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def config() -> ConnectorConfig:
    return ConnectorConfig(base_url=BASE_URL)


@pytest.fixture
def make_connector(config):
    def _make(routes: Dict[str, List[Tuple[int, Any]]]):
        session = FakeSession(routes)
        return ShortcutConnector(config, session=session), session
    return _make
