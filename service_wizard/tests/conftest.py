"""
Test configuration and fixtures for service wizard tests.

Provides a deterministic clock, a recording chat transport and a webhook
dispatcher backed by httpx.MockTransport.
"""

import json
from typing import Any, Callable, List, Optional, Sequence
from unittest.mock import AsyncMock

import httpx
import pytest

from ..config import WizardBotConfig
from ..models import ChatEvent, Choice
from ..registry import WizardRegistry, build_default_registry
from ..session_store import SessionStore
from ..webhook_client import WebhookDispatcher
from ..wizard_engine import WizardEngine

WEBHOOK_BASE_URL = "http://automation.test"


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """ChatTransport that records everything the engine says"""

    def __init__(self):
        self.replies: List[tuple] = []
        self.acknowledgements: List[tuple] = []

    async def reply(self, chat_id: int, text: str, choices: Optional[Sequence[Choice]] = None) -> None:
        self.replies.append((chat_id, text, list(choices) if choices else None))

    async def acknowledge_selection(self, chat_id: int, text: str) -> None:
        self.acknowledgements.append((chat_id, text))

    @property
    def texts(self) -> List[str]:
        return [text for _, text, _ in self.replies]

    @property
    def last_text(self) -> str:
        return self.replies[-1][1]

    @property
    def last_choices(self) -> Optional[List[Choice]]:
        return self.replies[-1][2]


class WebhookRecorder:
    """httpx handler that records requests and answers with a scripted status sequence"""

    def __init__(self, statuses: Sequence[int] = (200,)):
        self.statuses = list(statuses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.statuses)) - 1
        return httpx.Response(self.statuses[index], json={"received": True})

    @property
    def bodies(self) -> List[Any]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def test_config():
    """Test configuration fixture"""
    return WizardBotConfig(
        bot_token="123456:TEST-TOKEN",
        webhook_base_url=WEBHOOK_BASE_URL,
        default_chat_id=None,
        session_ttl=1800,
        webhook_max_attempts=3,
        webhook_retry_delay=1.0,
        host_suffix=".yairlab",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(ttl=1800, sweep_interval=300, clock=clock)


@pytest.fixture
def registry(test_config) -> WizardRegistry:
    return build_default_registry(test_config)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def webhook():
    return WebhookRecorder()


@pytest.fixture
def sleep_mock():
    return AsyncMock()


@pytest.fixture
def make_dispatcher(sleep_mock) -> Callable[..., WebhookDispatcher]:
    """Factory for dispatchers talking to an in-process handler"""

    def _make(handler: Callable, base_url: Optional[str] = WEBHOOK_BASE_URL, **kwargs) -> WebhookDispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("sleep", sleep_mock)
        return WebhookDispatcher(base_url, client=client, **kwargs)

    return _make


@pytest.fixture
def dispatcher(make_dispatcher, webhook):
    return make_dispatcher(webhook)


@pytest.fixture
def engine(registry, store, dispatcher):
    return WizardEngine(registry, store, dispatcher)


@pytest.fixture
def event():
    """Factory for chat events from the default test user"""

    def _event(text: str = "", chat_id: int = 42, user_id: int = 7, username: str = "alice") -> ChatEvent:
        return ChatEvent(chat_id=chat_id, user_id=user_id, username=username, text=text)

    return _event
