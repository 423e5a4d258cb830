"""Engine tunables. Passed per instance; there is no global configuration."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class EngineConfig:
    # Auto transitions a machine may chain before it is halted as a runaway.
    max_auto_steps: int = 10
    # Flush rounds (effects re-triggering effects) before a flush gives up.
    max_flush_rounds: int = 100


DEFAULT_CONFIG = EngineConfig()
