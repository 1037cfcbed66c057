"""Request entry point: route, serve from cache, run the chain, shape the result."""
import time
from typing import Any, Callable, Optional

from core.config import get_settings
from core.errors import ErrorClass
from core.logging import logger
from core.monitoring import UsageTracker
from praxis.adapters.cache import ResponseCache, make_cache_key
from praxis.adapters.router import ChainConfig, FeatureRouter, get_router
from praxis.chain import ChainResult, ProviderChain, degraded_response
from praxis.types import Request, Response, Session
from praxis.widgets import normalize_widgets

__all__ = ["Orchestrator", "get_orchestrator"]


def _elapsed_ms(started: float, clock: Callable[[], float]) -> float:
    return (clock() - started) * 1000.0


class Orchestrator:
    """Holds the router, the response cache and the usage tracker.

    Apart from the cache nothing survives between calls; chat continuity is
    carried by the caller's :class:`~praxis.types.Session`.
    """

    def __init__(
        self,
        router: Optional[FeatureRouter] = None,
        cache: Optional[ResponseCache] = None,
        tracker: Optional[UsageTracker] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.router = router or get_router()
        self.cache = cache if cache is not None else ResponseCache()
        self.tracker = tracker or UsageTracker()
        self._clock = clock

    async def process(self, request: Request, session: Optional[Session] = None) -> Response:
        """Answer one request.

        Raises ``UnknownFeatureError`` when the feature type has no chain;
        every provider or parsing failure is folded into a degraded response.
        """
        started = self._clock()
        chain = self.router.route(request.feature_type)
        key = make_cache_key(request.feature_type, request.message)

        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {request.feature_type.value} ({key[:12]})")
            response = cached.model_copy(update={
                "cache_hit": True,
                "processing_time_ms": _elapsed_ms(started, self._clock),
            })
            self._track(request, response)
            return response

        result = await ProviderChain(chain).run(request, session)
        if not result.succeeded:
            # An aborted chain keeps its true position; exhaustion always means fallback.
            fallback_used = result.fallback_used if result.error_class is ErrorClass.AUTH_FAILURE else True
            response = degraded_response(
                result.error_class,
                fallback_used=fallback_used,
                processing_time_ms=_elapsed_ms(started, self._clock),
            )
            self._track(request, response)
            return response

        response = self._build_response(chain, result, _elapsed_ms(started, self._clock))
        await self.cache.put(key, response, chain.ttl_seconds)
        self._track(request, response)
        return response

    def _build_response(self, chain: ChainConfig, result: ChainResult, elapsed_ms: float) -> Response:
        output = result.output
        return Response(
            content=result.content,
            model_used=output.model,
            confidence=output.confidence,
            structured_payload=self._structured_payload(chain, result),
            tokens_used=output.tokens_used,
            cost_cents=output.cost_cents,
            processing_time_ms=elapsed_ms,
            cache_hit=False,
            fallback_used=result.fallback_used,
            sources=list(output.sources),
        )

    @staticmethod
    def _structured_payload(chain: ChainConfig, result: ChainResult) -> Any:
        if chain.output == "widgets":
            payload = normalize_widgets(result.decoded)
            if payload is None:
                logger.warning(f"[{chain.feature_type.value}] no renderable widgets in provider output")
            return payload
        if chain.output == "json":
            return result.decoded
        return None

    def _track(self, request: Request, response: Response) -> None:
        try:
            profile = request.context.user_profile
            self.tracker.record(
                request.caller_id,
                request.feature_type.value,
                response,
                priority=request.priority.value,
                subscription_tier=profile.subscription_tier if profile else None,
            )
        except Exception as e:
            logger.error(f"Usage tracking failed: {e}")


_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator built from the global settings."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = Orchestrator(
            router=FeatureRouter.from_settings(settings),
            cache=ResponseCache(max_size=settings.app.CACHE_MAX_SIZE),
        )
    return _orchestrator
