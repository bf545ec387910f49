# app/providers/factory.py
from __future__ import annotations

from typing import Dict, Optional

from app.providers.base import SettlementProvider

_PROVIDER_CACHE: Dict[str, SettlementProvider] = {}


class ProviderNotConfigured(Exception):
    pass


def normalize_provider_name(name: str) -> str:
    return (name or "").strip().upper().replace("-", "_").replace(" ", "_")


def build_provider(name: str) -> Optional[SettlementProvider]:
    key = normalize_provider_name(name)
    if not key:
        return None

    if key in _PROVIDER_CACHE:
        return _PROVIDER_CACHE[key]

    if key == "MOCK":
        from app.providers.mock import MockSettlementProvider
        provider = MockSettlementProvider()

    elif key == "HTTP":
        from app.providers.http import HttpSettlementProvider
        provider = HttpSettlementProvider()

    else:
        return None

    _PROVIDER_CACHE[key] = provider
    return provider


class ProviderRegistry:
    """One settlement provider instance per processor type (STRIPE, RAZORPAY, ...)."""

    def __init__(self, providers: Optional[Dict[str, SettlementProvider]] = None):
        self._providers: Dict[str, SettlementProvider] = {}
        for name, provider in (providers or {}).items():
            self.register(name, provider)

    def register(self, processor_type: str, provider: SettlementProvider) -> None:
        self._providers[normalize_provider_name(processor_type)] = provider

    def get(self, processor_type: str) -> SettlementProvider:
        provider = self._providers.get(normalize_provider_name(processor_type))
        if provider is None:
            raise ProviderNotConfigured(f"Unsupported processor: {processor_type}")
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def items(self):
        return sorted(self._providers.items())


def registry_from_mapping(mapping: Dict[str, str]) -> ProviderRegistry:
    """
    Build a registry from {processor_type: adapter_name}, e.g.
    {"STRIPE": "HTTP", "RAZORPAY": "HTTP"}.
    """
    registry = ProviderRegistry()
    for processor_type, adapter in mapping.items():
        provider = build_provider(adapter)
        if provider is None:
            raise ProviderNotConfigured(f"Unknown settlement adapter {adapter!r} for {processor_type}")
        registry.register(processor_type, provider)
    return registry
