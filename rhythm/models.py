"""Data models for rhythm adaptation."""

from dataclasses import dataclass, field
from enum import Enum

from config import settings


class RhythmMode(str, Enum):
    """Qualitative pacing of the companion's visible behavior."""
    STEADY = "steady"      # Calm, regular beat (initial mode)
    PULSE = "pulse"        # Bursty, high energy
    SEQUENCE = "sequence"  # Slow scripted sequence while idle
    ADAPTIVE = "adaptive"  # Follows the user's pace
    SYNC = "sync"          # Locked to an external source, only on request


# mode -> (tempo in beats per minute, intensity 0-1)
MODE_PRESETS: dict[RhythmMode, tuple[int, float]] = {
    RhythmMode.STEADY: (60, 0.3),
    RhythmMode.PULSE: (140, 0.8),
    RhythmMode.SEQUENCE: (90, 0.6),
    RhythmMode.ADAPTIVE: (80, 0.5),
    RhythmMode.SYNC: (120, 0.7),
}


@dataclass
class RhythmState:
    mode: RhythmMode = RhythmMode.STEADY
    tempo: int = 60
    intensity: float = 0.3
    active: bool = True
    changed_at: int = 0
    sync_source: str = None

    @classmethod
    def for_mode(cls, mode: RhythmMode, changed_at: int = 0, sync_source: str = None) -> "RhythmState":
        tempo, intensity = MODE_PRESETS[mode]
        return cls(mode=mode, tempo=tempo, intensity=intensity, changed_at=changed_at, sync_source=sync_source)

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "tempo": self.tempo,
            "intensity": self.intensity,
            "active": self.active,
            "changed_at": self.changed_at,
            "sync_source": self.sync_source,
        }


@dataclass
class InteractionStats:
    """Rolling numbers the decision table looks at."""

    recent_interaction_rate: int   # Interactions in the trailing 60 s
    idle_time: float               # Seconds since the last interaction
    last_interaction_time: int     # Epoch ms
    has_history: bool

    def to_dict(self) -> dict:
        return {
            "recent_interaction_rate": self.recent_interaction_rate,
            "idle_time": self.idle_time,
            "last_interaction_time": self.last_interaction_time,
            "has_history": self.has_history,
        }


@dataclass
class RhythmConfig:
    high_freq_threshold: int = 3       # Interactions per minute
    low_freq_threshold: int = 1
    idle_threshold: float = 15.0       # Seconds
    emotion_history_size: int = 10
    retention_ms: int = 120_000
    rate_window_ms: int = 60_000

    @classmethod
    def from_settings(cls) -> "RhythmConfig":
        return cls(
            high_freq_threshold=settings.rhythm_high_freq_threshold,
            low_freq_threshold=settings.rhythm_low_freq_threshold,
            idle_threshold=settings.rhythm_idle_threshold_seconds,
            emotion_history_size=settings.rhythm_emotion_history_size,
            retention_ms=settings.rhythm_interaction_retention_seconds * 1000,
        )


@dataclass
class RhythmSnapshot:
    """Debug view returned by get_stats()."""

    mode: RhythmMode
    interactions: int
    emotions: list = field(default_factory=list)
    last_update: int = 0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "interactions": self.interactions,
            "emotions": [getattr(e, "value", e) for e in self.emotions],
            "last_update": self.last_update,
        }
