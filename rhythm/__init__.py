"""
Rhythm adaptation - how fast and how intensely the companion should move.

The engine listens to interaction events and publishes mode changes on the
shared EventBus; the visual layer subscribes instead of being called back.
"""

from .models import RhythmMode, RhythmState, RhythmConfig, InteractionStats, MODE_PRESETS
from .engine import RhythmAdaptationEngine

__all__ = [
    "RhythmMode",
    "RhythmState",
    "RhythmConfig",
    "InteractionStats",
    "MODE_PRESETS",
    "RhythmAdaptationEngine",
]
