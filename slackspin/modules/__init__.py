"""Tick module interfaces and registry for Slackspin."""

from __future__ import annotations

from typing import Dict, Iterable

from .base import TickContext, TickModule, TickModuleFactory
from .now_playing import NowPlayingModule
from .rotation import RotationModule

__all__ = [
    "ModuleRegistry",
    "NowPlayingModule",
    "RotationModule",
    "TickContext",
    "TickModule",
    "TickModuleFactory",
    "default_registry",
]


class ModuleRegistry:
    """Registry mapping a runtime mode to its tick module."""

    def __init__(self) -> None:
        self._registry: Dict[str, TickModuleFactory] = {}

    def register(self, mode: str, factory: TickModuleFactory) -> None:
        if mode in self._registry:
            raise ValueError(f"Module already registered for mode: {mode}")
        self._registry[mode] = factory

    def get(self, mode: str) -> TickModuleFactory:
        try:
            return self._registry[mode]
        except KeyError as exc:
            raise KeyError(f"Unknown mode: {mode}") from exc

    def modes(self) -> Iterable[str]:
        return self._registry.keys()


default_registry = ModuleRegistry()
default_registry.register(NowPlayingModule.name, NowPlayingModule)
default_registry.register(RotationModule.name, RotationModule)
