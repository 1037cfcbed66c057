"""End-to-end tests for Orchestrator.process with scripted adapters."""
import asyncio

import pytest

from conftest import ScriptedAdapter, failing, make_chain, make_request, make_router
from core.errors import (
    AuthFailureError,
    ErrorClass,
    QuotaExceededError,
    TransientProviderError,
    UnknownFeatureError,
)
from core.monitoring import UsageTracker
from praxis.chain import APOLOGY_MESSAGE, AUTH_FAILURE_MESSAGE
from praxis.orchestrator import Orchestrator
from praxis.types import ConversationContext, FeatureType, Priority, Session, UserProfile
from praxis.widgets import InsightPayload, MetricWidget

INSIGHT_REPLY = """Here are your insights:
```json
{"title": "Prep for the talk", "widgets": [
  {"type": "metric", "title": "Slides done", "value": 12, "unit": "/20"},
  {"type": "chart", "chartType": "line", "title": "Missing data"}
]}
```"""


def _orchestrator(*chains, cache=None, tracker=None):
    return Orchestrator(router=make_router(*chains), cache=cache, tracker=tracker)


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_identical_request_is_a_cache_hit(self, cache):
        adapter = ScriptedAdapter("a", "Take a short walk.", delay=0.02)
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache)

        first = await orchestrator.process(make_request("I feel stuck"))
        second = await orchestrator.process(make_request("  i FEEL   stuck "))

        assert len(adapter.calls) == 1
        assert not first.cache_hit
        assert second.cache_hit
        assert second.content == first.content
        assert second.model_used == first.model_used
        assert second.processing_time_ms < first.processing_time_ms

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, cache, clock):
        adapter = ScriptedAdapter("a", "first", "second")
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter, ttl=60), cache=cache)

        assert (await orchestrator.process(make_request())).content == "first"
        clock.advance(30)
        assert (await orchestrator.process(make_request())).cache_hit
        clock.advance(31)
        refreshed = await orchestrator.process(make_request())

        assert refreshed.content == "second"
        assert not refreshed.cache_hit
        assert len(adapter.calls) == 2

    @pytest.mark.asyncio
    async def test_feature_types_do_not_share_entries(self, cache):
        chat = ScriptedAdapter("chat", "chat reply")
        summary = ScriptedAdapter("sum", "summary reply")
        orchestrator = _orchestrator(
            make_chain(FeatureType.CHAT, chat),
            make_chain(FeatureType.NOTE_SUMMARY, summary),
            cache=cache,
        )
        await orchestrator.process(make_request("same text"))
        response = await orchestrator.process(make_request("same text", FeatureType.NOTE_SUMMARY))

        assert response.content == "summary reply"
        assert not response.cache_hit

    @pytest.mark.asyncio
    async def test_caller_mutation_does_not_reach_later_hits(self, cache):
        adapter = ScriptedAdapter("a", '{"title": "Gym"}')
        orchestrator = _orchestrator(make_chain(FeatureType.TASK_PARSING, adapter, output="json"), cache=cache)

        first = await orchestrator.process(make_request("gym", FeatureType.TASK_PARSING))
        first.structured_payload["title"] = "edited by caller"
        hit = await orchestrator.process(make_request("gym", FeatureType.TASK_PARSING))
        hit.structured_payload["title"] = "edited again"
        again = await orchestrator.process(make_request("gym", FeatureType.TASK_PARSING))

        assert hit.cache_hit and again.cache_hit
        assert again.structured_payload == {"title": "Gym"}
        assert len(adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_degraded_responses_are_not_cached(self, cache):
        adapter = ScriptedAdapter("a", failing(TransientProviderError), "recovered")
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache)

        assert (await orchestrator.process(make_request())).degraded
        second = await orchestrator.process(make_request())

        assert second.content == "recovered"
        assert not second.cache_hit
        assert len(cache) == 1


class TestFallbackAndDegradation:
    @pytest.mark.asyncio
    async def test_fallback_used_flag(self, cache):
        primary = ScriptedAdapter("a", failing(QuotaExceededError))
        backup = ScriptedAdapter("b", "from backup", confidence=0.8)
        response = await _orchestrator(make_chain(FeatureType.CHAT, primary, backup), cache=cache).process(make_request())

        assert response.content == "from backup"
        assert response.model_used == "b"
        assert response.fallback_used
        assert response.confidence == 0.8
        assert response.tokens_used == 42
        assert response.cost_cents == 0.12
        assert response.error_class is None

    @pytest.mark.asyncio
    async def test_exhausted_chain_degrades(self, cache):
        adapters = [ScriptedAdapter("a", failing(TransientProviderError)),
                    ScriptedAdapter("b", failing(QuotaExceededError))]
        response = await _orchestrator(make_chain(FeatureType.CHAT, *adapters), cache=cache).process(make_request())

        assert response.degraded
        assert response.content == APOLOGY_MESSAGE
        assert response.model_used == "fallback"
        assert response.confidence == 0.0
        assert response.fallback_used
        assert response.error_class is ErrorClass.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_auth_failure_is_distinguishable(self, cache):
        primary = ScriptedAdapter("a", failing(AuthFailureError))
        backup = ScriptedAdapter("b", "unused")
        response = await _orchestrator(make_chain(FeatureType.CHAT, primary, backup), cache=cache).process(make_request())

        assert response.degraded
        assert response.error_class is ErrorClass.AUTH_FAILURE
        assert response.content == AUTH_FAILURE_MESSAGE
        assert not response.fallback_used
        assert backup.calls == []

    @pytest.mark.asyncio
    async def test_empty_chain_degrades_without_error_class(self, cache):
        response = await _orchestrator(make_chain(FeatureType.CHAT), cache=cache).process(make_request())
        assert response.degraded
        assert response.error_class is None

    @pytest.mark.asyncio
    async def test_unknown_feature_raises(self, cache):
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, ScriptedAdapter("a", "x")), cache=cache)
        with pytest.raises(UnknownFeatureError):
            await orchestrator.process(make_request(feature_type=FeatureType.VISION_OCR))


class TestStructuredPayload:
    @pytest.mark.asyncio
    async def test_widgets_are_normalized(self, cache):
        adapter = ScriptedAdapter("a", INSIGHT_REPLY)
        chain = make_chain(FeatureType.TASK_INSIGHTS, adapter, output="widgets")
        response = await _orchestrator(chain, cache=cache).process(make_request("talk prep", FeatureType.TASK_INSIGHTS))

        payload = response.structured_payload
        assert isinstance(payload, InsightPayload)
        assert payload.title == "Prep for the talk"
        assert [type(w) for w in payload.widgets] == [MetricWidget]
        assert payload.dropped == 1
        assert response.content.startswith('{"title"')

    @pytest.mark.asyncio
    async def test_no_renderable_widgets_still_succeeds(self, cache):
        adapter = ScriptedAdapter("a", '{"widgets": [{"type": "metric"}]}')
        chain = make_chain(FeatureType.TASK_INSIGHTS, adapter, output="widgets")
        response = await _orchestrator(chain, cache=cache).process(make_request("x", FeatureType.TASK_INSIGHTS))

        assert not response.degraded
        assert response.structured_payload is None

    @pytest.mark.asyncio
    async def test_json_feature_returns_decoded_value(self, cache):
        adapter = ScriptedAdapter("a", 'Parsed: [{"title": "Dentist", "date": "2024-05-02"}]')
        chain = make_chain(FeatureType.CALENDAR_EVENT_PARSING, adapter, output="json")
        response = await _orchestrator(chain, cache=cache).process(
            make_request("dentist on may 2", FeatureType.CALENDAR_EVENT_PARSING))

        assert response.structured_payload == [{"title": "Dentist", "date": "2024-05-02"}]
        assert response.content == '[{"title": "Dentist", "date": "2024-05-02"}]'

    @pytest.mark.asyncio
    async def test_unrecoverable_json_falls_through_the_chain(self, cache):
        chatty = ScriptedAdapter("a", "Sure, I'll add that.")
        strict = ScriptedAdapter("b", '{"title": "Dentist"}')
        chain = make_chain(FeatureType.TASK_PARSING, chatty, strict, output="json")
        response = await _orchestrator(chain, cache=cache).process(make_request("dentist", FeatureType.TASK_PARSING))

        assert response.fallback_used
        assert response.structured_payload == {"title": "Dentist"}

    @pytest.mark.asyncio
    async def test_text_feature_has_no_payload(self, cache):
        adapter = ScriptedAdapter("a", '{"looks": "like json"}')
        response = await _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache).process(make_request())
        assert response.structured_payload is None
        assert response.content == '{"looks": "like json"}'


class TestSessionsAndConcurrency:
    @pytest.mark.asyncio
    async def test_session_is_forwarded_not_mutated(self, cache):
        adapter = ScriptedAdapter("a", "hello")
        session = Session(session_id="s-1")
        await _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache).process(make_request(), session)

        assert adapter.sessions == [session]
        assert session.history == []

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_independent(self, cache):
        adapter = ScriptedAdapter("a", "ok", delay=0.01)
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache)

        responses = await asyncio.gather(*(orchestrator.process(make_request(f"question {i}")) for i in range(5)))

        assert all(not r.degraded for r in responses)
        assert len(cache) == 5

    @pytest.mark.asyncio
    async def test_concurrent_identical_misses_each_call_provider(self, cache):
        adapter = ScriptedAdapter("a", "ok", delay=0.01)
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache)

        await asyncio.gather(orchestrator.process(make_request("same")), orchestrator.process(make_request("same")))

        assert len(adapter.calls) == 2


class TestTelemetry:
    @pytest.mark.asyncio
    async def test_requests_are_counted(self, cache, tracker):
        adapter = ScriptedAdapter("a", "ok")
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache, tracker=tracker)

        await orchestrator.process(make_request())
        await orchestrator.process(make_request())

        assert tracker.value("praxis_requests_total", feature="chat", model="a", cache_hit="false") == 1
        assert tracker.value("praxis_requests_total", feature="chat", model="a", cache_hit="true") == 1
        assert tracker.value("praxis_tokens_total", feature="chat", model="a") == 42

    @pytest.mark.asyncio
    async def test_tracker_failure_does_not_fail_the_request(self, cache):
        class BrokenTracker:
            def record(self, *args):
                raise RuntimeError("metrics backend down")

        adapter = ScriptedAdapter("a", "ok")
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter), cache=cache, tracker=BrokenTracker())
        assert (await orchestrator.process(make_request())).content == "ok"


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_reaches_in_flight_adapter(self, cache):
        class Hanging(ScriptedAdapter):
            cancelled = False

            async def _invoke(self, request, session):
                self.calls.append(request)
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    self.cancelled = True
                    raise
                return await super()._invoke(request, session)

        adapter = Hanging("slow", "never")
        backup = ScriptedAdapter("backup", "unused")
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, adapter, backup, timeout=30), cache=cache)

        task = asyncio.create_task(orchestrator.process(make_request()))
        while not adapter.calls:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert adapter.cancelled
        assert backup.calls == []
        assert len(cache) == 0


class TestUsageLabels:
    @pytest.mark.asyncio
    async def test_priority_and_tier_reach_telemetry(self, cache):
        class RecordingTracker(UsageTracker):
            def __init__(self):
                super().__init__()
                self.lines = []

            def record(self, *args, **kwargs):
                telemetry = super().record(*args, **kwargs)
                self.lines.append(telemetry)
                return telemetry

        tracker = RecordingTracker()
        orchestrator = _orchestrator(make_chain(FeatureType.CHAT, ScriptedAdapter("a", "ok")),
                                     cache=cache, tracker=tracker)
        context = ConversationContext(user_profile=UserProfile(id="u", subscription_tier="pro"))
        await orchestrator.process(make_request(priority=Priority.HIGH, context=context))
        await orchestrator.process(make_request("no profile"))

        assert tracker.lines[0]["priority"] == "high"
        assert tracker.lines[0]["subscription_tier"] == "pro"
        assert tracker.lines[1]["priority"] == "medium"
        assert "subscription_tier" not in tracker.lines[1]
