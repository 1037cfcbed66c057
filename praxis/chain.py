"""Ordered fallback execution across a feature's provider adapters.

Each adapter is attempted at most once, under its own timeout:

* success stops the chain;
* ``transient``, ``quota_exceeded`` and ``malformed_output`` advance to the
  next adapter;
* ``auth_failure`` aborts the chain (switching providers does not fix a bad
  credential configuration);
* an exhausted chain yields a degraded result, never an exception.

Worst-case latency is therefore the sum of the per-attempt timeouts.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from core.errors import ErrorClass, MalformedOutputError, ProviderError
from core.logging import logger
from praxis.adapters.router import ChainConfig
from praxis.extractor import decode_json, extract_json
from praxis.types import FALLBACK_MODEL, ProviderOutput, Request, Response, Session

__all__ = [
    "APOLOGY_MESSAGE",
    "AUTH_FAILURE_MESSAGE",
    "ChainResult",
    "ProviderChain",
    "degraded_response",
]

APOLOGY_MESSAGE = "I'm sorry, I couldn't generate a response right now. Please try again in a moment."
AUTH_FAILURE_MESSAGE = (
    "The AI provider rejected its credentials. This is a configuration problem, "
    "not a content failure; please check the provider API keys."
)


@dataclass(frozen=True)
class ChainResult:
    """Outcome of one chain run."""
    output: Optional[ProviderOutput] = None
    content: str = ""
    decoded: Any = None
    adapter_index: int = -1
    error_class: Optional[ErrorClass] = None
    attempts: Tuple[Tuple[str, ErrorClass], ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.output is not None

    @property
    def fallback_used(self) -> bool:
        return self.adapter_index > 0


def degraded_response(error_class: Optional[ErrorClass], fallback_used: bool = True, processing_time_ms: float = 0.0) -> Response:
    """The safe response returned when no adapter produced usable output."""
    content = AUTH_FAILURE_MESSAGE if error_class is ErrorClass.AUTH_FAILURE else APOLOGY_MESSAGE
    return Response(
        content=content,
        model_used=FALLBACK_MODEL,
        confidence=0.0,
        tokens_used=0,
        cost_cents=0.0,
        processing_time_ms=processing_time_ms,
        cache_hit=False,
        fallback_used=fallback_used,
        error_class=error_class,
    )


class ProviderChain:
    def __init__(self, config: ChainConfig) -> None:
        self.config = config

    async def _attempt(self, index: int, request: Request, session: Optional[Session]) -> ChainResult:
        adapter = self.config.adapters[index]
        output = await asyncio.wait_for(
            adapter.invoke(request, session),
            timeout=self.config.timeout_seconds,
        )
        if not self.config.structured:
            return ChainResult(output=output, content=output.text, adapter_index=index)

        extracted = extract_json(output.text)
        if extracted is None:
            raise MalformedOutputError(f"no JSON recoverable from {adapter.name} output", adapter.name)
        return ChainResult(output=output, content=extracted, decoded=decode_json(extracted), adapter_index=index)

    async def run(self, request: Request, session: Optional[Session] = None) -> ChainResult:
        feature = self.config.feature_type.value
        attempts: List[Tuple[str, ErrorClass]] = []
        error_class: Optional[ErrorClass] = None

        for index, adapter in enumerate(self.config.adapters):
            try:
                result = await self._attempt(index, request, session)
            except asyncio.TimeoutError:
                error_class = ErrorClass.TRANSIENT
                logger.warning(f"[{feature}] {adapter.name} timed out after {self.config.timeout_seconds}s")
            except ProviderError as e:
                error_class = e.error_class
                logger.warning(f"[{feature}] {adapter.name} failed ({error_class.value}): {e}")
            except Exception as e:
                # Adapter bug or unexpected library error: contained like a transient failure.
                error_class = ErrorClass.TRANSIENT
                logger.error(f"[{feature}] {adapter.name} raised unexpectedly: {e!r}", exc_info=True)
            else:
                if index > 0:
                    logger.info(f"[{feature}] served by fallback adapter #{index} {adapter.name}")
                return ChainResult(
                    output=result.output,
                    content=result.content,
                    decoded=result.decoded,
                    adapter_index=index,
                    attempts=tuple(attempts),
                )

            attempts.append((adapter.name, error_class))
            if error_class is ErrorClass.AUTH_FAILURE:
                logger.error(f"[{feature}] credential rejected by {adapter.name}; aborting chain")
                return ChainResult(adapter_index=index, error_class=error_class, attempts=tuple(attempts))

        if not self.config.adapters:
            logger.warning(f"[{feature}] no adapters configured; returning degraded response")
        else:
            logger.error(f"[{feature}] all {len(attempts)} adapter(s) failed; returning degraded response")
        return ChainResult(adapter_index=len(attempts), error_class=error_class, attempts=tuple(attempts))
