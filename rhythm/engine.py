"""
Rhythm Adaptation Engine

Derives a pacing mode from rolling interaction statistics and the current
emotion. Consumes the same (state, emotion, timestamp) stream the scheduler
sees, but is independent of it: nothing here blocks on or waits for a
behavior batch.

Two rolling structures are kept:
- interaction timestamps (2 minute retention)
- emotion history ring (default 10)

Statistics are computed from the history BEFORE the current event is
recorded, and only real interactions (is_interaction=True) are recorded.
Status probes must not count, otherwise idle time collapses to zero.

Decision table, first match wins:

    rate >= 2 x high                            -> pulse
    excited and rate >= high                    -> pulse
    focused                                     -> adaptive
    curious and low <= rate <= high             -> adaptive
    happy and rate >= low                       -> adaptive
    sleepy and history and idle > idle_thr / 2  -> sequence
    sleepy                                      -> steady
    calm and idle > idle_thr                    -> sequence
    otherwise                                   -> steady

Mode changes are published on the event bus as "rhythm.changed".
"""

import logging
from collections import deque
from typing import Callable, Optional

from behavior.events import RHYTHM_CHANGED, EventBus
from behavior.models import EmotionType, PetState, now_ms

from .models import InteractionStats, RhythmConfig, RhythmMode, RhythmSnapshot, RhythmState

logger = logging.getLogger("companion.rhythm")


class RhythmAdaptationEngine:
    """Owns the rhythm state for one companion."""

    def __init__(
        self,
        config: Optional[RhythmConfig] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or RhythmConfig.from_settings()
        self.bus = bus
        self.clock = clock
        self._interactions: deque[int] = deque()
        self._emotions: deque[EmotionType] = deque(maxlen=self.config.emotion_history_size)
        self._state = RhythmState.for_mode(RhythmMode.STEADY)
        self._last_update = 0

    # -- statistics -----------------------------------------------------

    def interaction_stats(self, now: int) -> InteractionStats:
        window_start = now - self.config.rate_window_ms
        rate = sum(1 for ts in self._interactions if ts > window_start)

        if self._interactions:
            last = self._interactions[-1]
        else:
            # No history yet: behave as if the last interaction was a minute ago
            last = now - self.config.rate_window_ms

        return InteractionStats(
            recent_interaction_rate=rate,
            idle_time=(now - last) / 1000,
            last_interaction_time=last,
            has_history=bool(self._interactions),
        )

    def idle_time(self, now: Optional[int] = None) -> float:
        """Seconds since the last recorded interaction."""
        return self.interaction_stats(self.clock() if now is None else now).idle_time

    def determine_mode(self, state: PetState, emotion: EmotionType, stats: InteractionStats) -> RhythmMode:
        """Apply the decision table. state is accepted for future rules; none use it today."""
        cfg = self.config
        rate = stats.recent_interaction_rate

        if rate >= cfg.high_freq_threshold * 2:
            return RhythmMode.PULSE
        if emotion == EmotionType.EXCITED and rate >= cfg.high_freq_threshold:
            return RhythmMode.PULSE
        if emotion == EmotionType.FOCUSED:
            return RhythmMode.ADAPTIVE
        if emotion == EmotionType.CURIOUS and cfg.low_freq_threshold <= rate <= cfg.high_freq_threshold:
            return RhythmMode.ADAPTIVE
        if emotion == EmotionType.HAPPY and rate >= cfg.low_freq_threshold:
            return RhythmMode.ADAPTIVE
        if emotion == EmotionType.SLEEPY and stats.has_history and stats.idle_time > cfg.idle_threshold / 2:
            return RhythmMode.SEQUENCE
        if emotion == EmotionType.SLEEPY:
            return RhythmMode.STEADY
        if emotion == EmotionType.CALM and stats.idle_time > cfg.idle_threshold:
            return RhythmMode.SEQUENCE
        return RhythmMode.STEADY

    # -- updates --------------------------------------------------------

    def _record_interaction(self, timestamp: int) -> None:
        self._interactions.append(timestamp)
        cutoff = timestamp - self.config.retention_ms
        while self._interactions and self._interactions[0] <= cutoff:
            self._interactions.popleft()

    def update_rhythm_by_context(
        self,
        state: PetState,
        emotion: EmotionType,
        timestamp: Optional[int] = None,
        is_interaction: bool = True,
    ) -> RhythmMode:
        """Feed one event and return the (possibly new) mode."""
        now = self.clock() if timestamp is None else int(timestamp)
        emotion = EmotionType(emotion)
        state = PetState(state)

        stats = self.interaction_stats(now)
        mode = self.determine_mode(state, emotion, stats)

        if is_interaction:
            self._record_interaction(now)
        self._emotions.append(emotion)

        self._switch(mode, now, stats)
        self._last_update = now
        return mode

    def _switch(self, mode: RhythmMode, now: int, stats: Optional[InteractionStats] = None, sync_source: str = None) -> None:
        previous = self._state.mode
        if mode == previous and sync_source is None:
            return

        self._state = RhythmState.for_mode(mode, changed_at=now, sync_source=sync_source)
        logger.info(f"Rhythm {previous.value} -> {mode.value}")
        if self.bus is not None:
            self.bus.publish(
                RHYTHM_CHANGED,
                previous=previous.value,
                rhythm=self._state.to_dict(),
                stats=stats.to_dict() if stats else None,
            )

    def set_sync(self, source: str, timestamp: Optional[int] = None) -> None:
        """Lock onto an external beat. The next context update re-evaluates as usual."""
        self._switch(RhythmMode.SYNC, self.clock() if timestamp is None else timestamp, sync_source=source)

    # -- queries --------------------------------------------------------

    def get_current_rhythm(self) -> RhythmMode:
        return self._state.mode

    def get_rhythm_state(self) -> RhythmState:
        s = self._state
        return RhythmState(s.mode, s.tempo, s.intensity, s.active, s.changed_at, s.sync_source)

    def get_stats(self) -> RhythmSnapshot:
        return RhythmSnapshot(
            mode=self._state.mode,
            interactions=len(self._interactions),
            emotions=list(self._emotions),
            last_update=self._last_update,
        )

    def reset(self) -> None:
        self._interactions.clear()
        self._emotions.clear()
        self._state = RhythmState.for_mode(RhythmMode.STEADY)
        self._last_update = 0
