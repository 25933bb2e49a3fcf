from __future__ import annotations

from typing import Callable, Dict, Optional

from .adapters.base import BaseAdapter
from .adapters.echo import EchoAdapter
from .adapters.gemini import GeminiAdapter
from .adapters.openai import OpenAIAdapter
from .config import AdapterConfig, AppConfig, select_adapter

AdapterFactory = Callable[[str, Dict], BaseAdapter]


class AdapterRegistry:
    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {
            "echo": EchoAdapter,
            "gemini": GeminiAdapter,
            "openai": OpenAIAdapter,
        }

    def register(self, adapter_type: str, factory: AdapterFactory) -> None:
        self._factories[adapter_type] = factory

    def create(self, cfg: AdapterConfig) -> BaseAdapter:
        factory = self._factories.get(cfg.type)
        if not factory:
            raise ValueError(f"Unknown adapter type: {cfg.type}")
        return factory(cfg.name, dict(cfg.settings or {}))


class ProviderService:
    def __init__(self, config: AppConfig, registry: Optional[AdapterRegistry] = None) -> None:
        self.config = config
        self.registry = registry or AdapterRegistry()
        # Built lazily and cached so each request reuses one adapter.
        self.adapters: Dict[str, BaseAdapter] = {}

    def resolve_adapter(self, name: Optional[str] = None) -> BaseAdapter:
        cfg = select_adapter(self.config, name)
        if not cfg:
            raise RuntimeError("No enabled adapters in config")
        adapter = self.adapters.get(cfg.name)
        if not adapter:
            adapter = self.registry.create(cfg)
            self.adapters[cfg.name] = adapter
        return adapter

    def status(self) -> Dict[str, Dict]:
        out = {}
        for cfg in self.config.adapters:
            entry = {"type": cfg.type, "enabled": cfg.enabled, "available": False}
            if cfg.enabled:
                try:
                    adapter = self.resolve_adapter(cfg.name)
                    entry["available"] = adapter.is_available()
                    entry["resource"] = adapter.resource_hint()
                except ValueError as exc:
                    entry["error"] = str(exc)
            out[cfg.name] = entry
        return out
