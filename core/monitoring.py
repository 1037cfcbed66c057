from typing import Any, Dict, Optional

import prometheus_client as prom

from core.logging import logger


class UsageTracker:
    """Per-request telemetry: prometheus counters plus one structured log line.

    Metrics live on a private registry so several trackers (one per test,
    for instance) never collide on metric names.
    """

    def __init__(self, registry: Optional[prom.CollectorRegistry] = None):
        self.registry = registry or prom.CollectorRegistry()
        self.metrics = {
            'requests': prom.Counter(
                'praxis_requests_total', 'Processed requests',
                ['feature', 'model', 'cache_hit'], registry=self.registry,
            ),
            'fallbacks': prom.Counter(
                'praxis_fallbacks_total', 'Requests served past the primary adapter',
                ['feature'], registry=self.registry,
            ),
            'degraded': prom.Counter(
                'praxis_degraded_total', 'Requests answered with the degraded response',
                ['feature', 'error_class'], registry=self.registry,
            ),
            'cost': prom.Counter(
                'praxis_cost_cents_total', 'Estimated provider cost in cents',
                ['feature', 'model'], registry=self.registry,
            ),
            'tokens': prom.Counter(
                'praxis_tokens_total', 'Tokens consumed',
                ['feature', 'model'], registry=self.registry,
            ),
            'latency': prom.Histogram(
                'praxis_request_latency_ms', 'End-to-end processing time in milliseconds',
                ['feature'], registry=self.registry,
                buckets=(1, 5, 25, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000),
            ),
        }

    def record(self, caller_id: str, feature: str, response, **labels: Any) -> Dict[str, Any]:
        """Records one processed request and returns the logged telemetry.

        Extra keyword arguments (priority, subscription tier) are added to the
        log line only, keeping metric label cardinality fixed.
        """
        model = response.model_used
        self.metrics['requests'].labels(feature=feature, model=model, cache_hit=str(response.cache_hit).lower()).inc()
        self.metrics['latency'].labels(feature=feature).observe(response.processing_time_ms)
        if response.fallback_used:
            self.metrics['fallbacks'].labels(feature=feature).inc()
        if response.degraded:
            error_class = response.error_class.value if response.error_class else 'none'
            self.metrics['degraded'].labels(feature=feature, error_class=error_class).inc()
        if not response.cache_hit:
            self.metrics['cost'].labels(feature=feature, model=model).inc(response.cost_cents)
            self.metrics['tokens'].labels(feature=feature, model=model).inc(response.tokens_used)

        telemetry = {
            'caller_id': caller_id,
            'feature': feature,
            'model': model,
            'tokens': response.tokens_used,
            'cost_cents': response.cost_cents,
            'latency_ms': round(response.processing_time_ms, 2),
            'cache_hit': response.cache_hit,
            'fallback_used': response.fallback_used,
            'error_class': response.error_class.value if response.error_class else None,
        }
        telemetry.update({k: v for k, v in labels.items() if v is not None})
        logger.info(f"AI usage {feature} via {model}", extra={'telemetry': telemetry})
        return telemetry

    def value(self, name: str, **labels) -> float:
        """Current sample value for a metric, 0.0 when never observed."""
        sample = self.registry.get_sample_value(name, labels)
        return sample or 0.0
