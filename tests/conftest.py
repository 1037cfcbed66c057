"""Shared fixtures: scripted adapters and chain/router builders."""
import asyncio
from typing import Any, List, Optional

import pytest

from core.errors import ProviderError
from core.monitoring import UsageTracker
from praxis.adapters.cache import ResponseCache
from praxis.adapters.providers import ProviderAdapter
from praxis.adapters.router import ChainConfig, FeatureRouter
from praxis.types import FeatureType, ProviderOutput, Request, Session


class ScriptedAdapter(ProviderAdapter):
    """Adapter replaying a script of outcomes: a text reply, an exception, or a delay."""

    provider = "scripted"

    def __init__(self, model: str, *outcomes: Any, delay: float = 0.0, confidence: float = 0.9):
        super().__init__(model)
        self.outcomes: List[Any] = list(outcomes)
        self.delay = delay
        self.confidence = confidence
        self.calls: List[Request] = []
        self.sessions: List[Optional[Session]] = []

    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        self.calls.append(request)
        self.sessions.append(session)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return ProviderOutput(
            text=outcome,
            model=self.model,
            tokens_used=42,
            cost_cents=0.12,
            confidence=self.confidence,
        )


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_chain(feature_type: FeatureType, *adapters: ProviderAdapter, output: str = "text",
               ttl: int = 3600, timeout: float = 1.0) -> ChainConfig:
    return ChainConfig(
        feature_type=feature_type,
        adapters=tuple(adapters),
        ttl_seconds=ttl,
        output=output,
        timeout_seconds=timeout,
    )


def make_request(message: str = "hello", feature_type: FeatureType = FeatureType.CHAT, **kwargs) -> Request:
    return Request(caller_id="user-1", message=message, feature_type=feature_type, **kwargs)


def make_router(*chains: ChainConfig) -> FeatureRouter:
    return FeatureRouter({chain.feature_type: chain for chain in chains})


def failing(error_cls, message: str = "boom") -> ProviderError:
    return error_cls(message, "scripted")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(max_size=16, clock=clock)


@pytest.fixture
def tracker():
    return UsageTracker()
