from __future__ import annotations
"""Feature router: maps a feature type to its provider chain.

Chains are assembled once, at configuration time, from the routing table.
Providers without a credential are left out of every chain there, so a
request never attempts (and fails on) an adapter that cannot authenticate.
After construction ``route`` is a pure lookup.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union

from core.config import Config, OutputKind, RoutingTable, get_settings
from core.errors import ConfigError, UnknownFeatureError
from core.logging import logger
from praxis.types import FeatureType

from .providers import ADAPTERS, ProviderAdapter, create_adapter

__all__ = ["ChainConfig", "FeatureRouter", "get_router"]

DEFAULT_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class ChainConfig:
    feature_type: FeatureType
    adapters: Tuple[ProviderAdapter, ...]
    ttl_seconds: int = 3600
    output: OutputKind = "text"
    timeout_seconds: float = DEFAULT_TIMEOUT_S

    @property
    def structured(self) -> bool:
        return self.output in ("json", "widgets")


class FeatureRouter:
    def __init__(self, chains: Dict[FeatureType, ChainConfig]) -> None:
        self._chains: Dict[FeatureType, ChainConfig] = dict(chains)

    def route(self, feature_type: Union[FeatureType, str]) -> ChainConfig:
        try:
            key = FeatureType(feature_type)
        except ValueError:
            raise UnknownFeatureError(f"unknown feature type: {feature_type!r}") from None
        chain = self._chains.get(key)
        if chain is None:
            raise UnknownFeatureError(f"no provider chain registered for {key.value}")
        return chain

    def features(self) -> Tuple[FeatureType, ...]:
        return tuple(self._chains)

    @classmethod
    def from_routing(
        cls,
        routing: RoutingTable,
        credentials: Callable[[str], Optional[str]],
        default_timeout: float = DEFAULT_TIMEOUT_S,
        adapter_factory: Callable[..., ProviderAdapter] = create_adapter,
    ) -> "FeatureRouter":
        """Build chains, skipping every provider whose credential is missing."""
        adapters: Dict[Tuple[str, str], ProviderAdapter] = {}
        skipped = set()
        chains: Dict[FeatureType, ChainConfig] = {}

        for name, route in routing.features.items():
            try:
                feature_type = FeatureType(name)
            except ValueError:
                raise ConfigError(f"routing entry for unknown feature type '{name}'") from None

            chain = []
            for spec in route.providers():
                if spec.provider not in ADAPTERS:
                    raise ConfigError(f"feature '{name}' references unknown provider '{spec.provider}'")
                api_key = credentials(spec.provider)
                if api_key is None:
                    skipped.add(spec.provider)
                    continue
                ident = (spec.provider, spec.model)
                if ident not in adapters:
                    adapters[ident] = adapter_factory(spec.provider, spec.model, api_key=api_key)
                chain.append(adapters[ident])

            if not chain:
                logger.warning(f"No credentialed provider for '{name}'; its requests will degrade immediately")

            chains[feature_type] = ChainConfig(
                feature_type=feature_type,
                adapters=tuple(chain),
                ttl_seconds=route.ttl,
                output=route.output,
                timeout_seconds=route.timeout or default_timeout,
            )

        for provider in sorted(skipped):
            logger.warning(f"Provider '{provider}' has no credential configured and was skipped from all chains")

        return cls(chains)

    @classmethod
    def from_settings(cls, config: Optional[Config] = None) -> "FeatureRouter":
        config = config or get_settings()
        return cls.from_routing(
            config.routing,
            config.app.credential_for,
            default_timeout=config.app.DEFAULT_TIMEOUT_S,
        )


_router: Optional[FeatureRouter] = None


def get_router() -> FeatureRouter:
    """Process-wide router built from the global settings."""
    global _router
    if _router is None:
        _router = FeatureRouter.from_settings()
    return _router
