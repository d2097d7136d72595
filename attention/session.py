from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .accumulator import ActiveWindowEvent, SessionAccumulator, SessionStateError
from .config import Settings
from .landmarks import FaceLandmarks, GazeSample, analyze
from .state import AttentionState, AttentionStateMachine, Transition

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000.0


def focus_score(looking_ms: float, away_ms: float) -> int:
    total = looking_ms + away_ms
    if total <= 0:
        return 0
    score = math.floor(100.0 * looking_ms / total + 0.5)
    return max(0, min(100, int(score)))


def iso_timestamp(ts_ms: float) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class FocusSession:
    start_time: float  # epoch milliseconds
    end_time: float
    duration_looking_ms: int
    duration_away_ms: int
    activity: Dict[str, int]
    sites: Dict[str, int]
    focus_score_percent: int

    @property
    def duration_ms(self) -> int:
        return int(round(self.end_time - self.start_time))

    def to_payload(self, user_id: str) -> Dict[str, Any]:
        """Body of the remote ``POST /api/session`` request."""
        return {
            "userId": user_id,
            "startTime": iso_timestamp(self.start_time),
            "endTime": iso_timestamp(self.end_time),
            "durationSession": self.duration_looking_ms,
            "activity": dict(self.activity),
            "focusScore": self.focus_score_percent,
        }


@dataclass
class LiveMetrics:
    timestamp: float
    state: AttentionState
    looking_ms: float
    away_ms: float
    elapsed_ms: float
    focus_score: int
    gaze_x: float = 0.0
    gaze_y: float = 0.0
    lid_ratio: float = 0.0
    fps: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "state": self.state.value,
            "looking_ms": int(self.looking_ms),
            "away_ms": int(self.away_ms),
            "elapsed_ms": int(self.elapsed_ms),
            "focus_score": self.focus_score,
            "gaze_x": self.gaze_x,
            "gaze_y": self.gaze_y,
            "lid_ratio": self.lid_ratio,
            "fps": self.fps,
        }


@dataclass
class Session:
    """
    One focus session: owns the accumulator and the attention state machine
    and is the only object that mutates them.
    """

    settings: Settings = field(default_factory=Settings)
    clock: Callable[[], float] = now_ms
    on_transition: Optional[Callable[[Transition], None]] = None

    accumulator: SessionAccumulator = field(init=False)
    machine: AttentionStateMachine = field(init=False)
    paused: bool = False
    last_sample: Optional[GazeSample] = None

    def __post_init__(self) -> None:
        self.accumulator = SessionAccumulator(browsers=tuple(self.settings.tracking.browsers))
        self.machine = AttentionStateMachine(
            thresholds=self.settings.thresholds,
            durations=self.accumulator.state_durations,
            on_transition=self._transition_hook,
        )

    def _transition_hook(self, transition: Transition) -> None:
        if self.on_transition is not None:
            self.on_transition(transition)

    @property
    def running(self) -> bool:
        return self.accumulator.active

    @property
    def state(self) -> AttentionState:
        return self.machine.state

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    def start(self, now: Optional[float] = None) -> None:
        if self.running:
            raise SessionStateError("session already running")
        ts = self._now(now)
        self.accumulator.start(ts)
        self.machine.begin(ts)
        self.paused = False
        self.last_sample = None
        logger.info("focus session started")

    def tick(self, face: Optional[FaceLandmarks], width: float, height: float, now: Optional[float] = None) -> AttentionState:
        if not self.running or self.paused:
            return self.machine.state
        ts = self._now(now)
        self.accumulator.drain()
        sample = analyze(face, width, height) if face is not None else None
        self.last_sample = sample
        return self.machine.tick(sample, ts)

    def tick_sample(self, sample: Optional[GazeSample], now: Optional[float] = None) -> AttentionState:
        if not self.running or self.paused:
            return self.machine.state
        self.last_sample = sample
        return self.machine.tick(sample, self._now(now))

    def post_window_event(self, event: ActiveWindowEvent, now: Optional[float] = None) -> None:
        if not self.running:
            return
        self.accumulator.post(event, self._now(now))
        self.accumulator.drain()

    def pause(self, now: Optional[float] = None) -> None:
        if not self.running or self.paused:
            return
        ts = self._now(now)
        self.machine.suspend(ts)
        self.accumulator.pause(ts)
        self.paused = True
        logger.info("focus session paused")

    def resume(self, now: Optional[float] = None) -> None:
        if not self.running or not self.paused:
            return
        ts = self._now(now)
        self.accumulator.resume(ts)
        self.paused = False
        logger.info("focus session resumed")

    def stop(self, now: Optional[float] = None) -> FocusSession:
        if not self.running:
            raise SessionStateError("session is not running")
        ts = self._now(now)
        self.machine.finish(ts)
        activity = self.accumulator.stop(ts)

        looking = self.accumulator.state_durations[AttentionState.LOOKING]
        away = self.accumulator.state_durations[AttentionState.AWAY]
        start = self.accumulator.session_start
        record = FocusSession(
            start_time=ts if start is None else start,
            end_time=ts,
            duration_looking_ms=int(round(looking)),
            duration_away_ms=int(round(away)),
            activity={app: int(round(ms)) for app, ms in activity.items()},
            sites={host: int(round(ms)) for host, ms in self.accumulator.site_durations.items()},
            focus_score_percent=focus_score(looking, away),
        )
        self.paused = False
        logger.info(
            "focus session stopped: looking=%dms away=%dms score=%d%%",
            record.duration_looking_ms,
            record.duration_away_ms,
            record.focus_score_percent,
        )
        return record

    def metrics(self, now: Optional[float] = None, fps: float = 0.0) -> LiveMetrics:
        ts = self._now(now)
        totals = self.machine.elapsed(ts)
        looking = totals[AttentionState.LOOKING]
        away = totals[AttentionState.AWAY]
        start = self.accumulator.session_start
        end = self.accumulator.session_end if self.accumulator.finalized else ts
        sample = self.last_sample
        return LiveMetrics(
            timestamp=ts,
            state=self.machine.state,
            looking_ms=looking,
            away_ms=away,
            elapsed_ms=max((ts if end is None else end) - start, 0.0) if start is not None else 0.0,
            focus_score=focus_score(looking, away),
            gaze_x=self.machine.gaze.dx or 0.0,
            gaze_y=self.machine.gaze.dy or 0.0,
            lid_ratio=sample.lid_ratio if sample else 0.0,
            fps=fps,
        )
