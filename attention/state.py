from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from .config import Thresholds
from .landmarks import GazeSample

logger = logging.getLogger(__name__)


class AttentionState(str, Enum):
    IDLE = "idle"
    LOOKING = "looking"
    AWAY = "away"


TRACKED_STATES = (AttentionState.LOOKING, AttentionState.AWAY)


@dataclass(frozen=True)
class Transition:
    ts: float  # epoch milliseconds
    previous: AttentionState
    state: AttentionState
    reason: str


@dataclass
class SmoothedGaze:
    alpha: float = 0.25
    dx: Optional[float] = None
    dy: Optional[float] = None

    def update(self, sample: GazeSample) -> tuple[float, float]:
        if self.dx is None or self.dy is None:
            self.dx, self.dy = sample.dx, sample.dy
        else:
            self.dx = self.dx + self.alpha * (sample.dx - self.dx)
            self.dy = self.dy + self.alpha * (sample.dy - self.dy)
        return self.dx, self.dy

    def reset(self) -> None:
        self.dx = None
        self.dy = None


@dataclass
class HysteresisTimers:
    absent_since: Optional[float] = None
    off_direction_since: Optional[float] = None
    eyes_closed_since: Optional[float] = None
    present_since: Optional[float] = None
    last_seen: Optional[float] = None

    def clear(self) -> None:
        self.absent_since = None
        self.off_direction_since = None
        self.eyes_closed_since = None
        self.present_since = None
        self.last_seen = None


def new_durations() -> Dict[AttentionState, float]:
    return {state: 0.0 for state in TRACKED_STATES}


@dataclass
class AttentionStateMachine:
    """
    Classifies per-frame presence and gaze into idle / looking / away.

    Every window is a soft timeout: conditions are compared against the
    timestamp passed to ``tick``, so a stalled frame loop only delays a
    transition. Time spent in LOOKING and AWAY is flushed into ``durations``
    on each transition; IDLE time is never recorded.
    """

    thresholds: Thresholds = field(default_factory=Thresholds)
    durations: Dict[AttentionState, float] = field(default_factory=new_durations)
    on_transition: Optional[Callable[[Transition], None]] = None

    state: AttentionState = AttentionState.IDLE
    entered_at: float = 0.0
    active: bool = False
    timers: HysteresisTimers = field(default_factory=HysteresisTimers)
    gaze: SmoothedGaze = field(default_factory=SmoothedGaze)
    transitions: List[Transition] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.gaze = SmoothedGaze(alpha=self.thresholds.smoothing_alpha)
        for state in TRACKED_STATES:
            self.durations.setdefault(state, 0.0)

    def begin(self, now: float) -> None:
        self.state = AttentionState.IDLE
        self.entered_at = now
        self.timers.clear()
        self.gaze = SmoothedGaze(alpha=self.thresholds.smoothing_alpha)
        self.transitions.clear()
        self.active = True

    def finish(self, now: float) -> None:
        """Flushes the open interval and drops every in-flight timer."""
        if not self.active:
            return
        self._transition(AttentionState.IDLE, now, "finish")
        self.timers.clear()
        self.gaze.reset()
        self.active = False

    def suspend(self, now: float) -> None:
        if not self.active:
            return
        self._transition(AttentionState.IDLE, now, "suspend")
        self.timers.clear()
        self.gaze.reset()

    def elapsed(self, now: float) -> Dict[AttentionState, float]:
        """Totals including the still-open interval of the current state."""
        totals = dict(self.durations)
        if self.active and self.state in totals:
            totals[self.state] += max(now - self.entered_at, 0.0)
        return totals

    def _transition(self, new_state: AttentionState, now: float, reason: str) -> bool:
        if new_state == self.state:
            return False
        previous = self.state
        if previous in TRACKED_STATES:
            self.durations[previous] += max(now - self.entered_at, 0.0)
        self.state = new_state
        self.entered_at = now
        transition = Transition(ts=now, previous=previous, state=new_state, reason=reason)
        self.transitions.append(transition)
        logger.debug("attention %s -> %s (%s)", previous.value, new_state.value, reason)
        if self.on_transition is not None:
            self.on_transition(transition)
        return True

    def _force_away(self, now: float, reason: str) -> None:
        self._transition(AttentionState.AWAY, now, reason)
        self.timers.present_since = None

    def _is_off_direction(self, dx: float, dy: float) -> bool:
        t = self.thresholds
        return abs(dx) > t.gaze_x_max or dy > t.gaze_y_max_down or dy < -t.gaze_y_max_up

    def tick(self, sample: Optional[GazeSample], now: float) -> AttentionState:
        """
        Advances the machine by one frame. ``sample`` is None when no face
        was detected in the frame.
        """
        if not self.active:
            return self.state

        t = self.thresholds
        timers = self.timers

        if sample is None:
            if timers.absent_since is None:
                timers.absent_since = timers.last_seen if timers.last_seen is not None else now
            timers.present_since = None
            if now - timers.absent_since >= t.absent_ms:
                self._force_away(now, "absent")
            return self.state

        timers.absent_since = None
        timers.last_seen = now
        if timers.present_since is None:
            timers.present_since = now

        dx, dy = self.gaze.update(sample)

        if self._is_off_direction(dx, dy):
            if timers.off_direction_since is None:
                timers.off_direction_since = now
            if (
                self.state == AttentionState.LOOKING
                and now - timers.off_direction_since >= t.direction_hold_ms
            ):
                self._force_away(now, "off_direction")
        else:
            timers.off_direction_since = None

        if (
            self.state != AttentionState.LOOKING
            and timers.present_since is not None
            and now - timers.present_since >= t.present_ms
        ):
            self._transition(AttentionState.LOOKING, now, "present")

        if sample.lid_ratio < t.blink_gap_ratio:
            if timers.eyes_closed_since is None:
                timers.eyes_closed_since = now
            if (
                self.state == AttentionState.LOOKING
                and now - timers.eyes_closed_since >= t.eyes_closed_ms
            ):
                self._force_away(now, "eyes_closed")
        else:
            timers.eyes_closed_since = None

        return self.state
