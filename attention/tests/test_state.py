import random

from attention.config import Thresholds
from attention.landmarks import GazeSample
from attention.state import AttentionState, AttentionStateMachine, SmoothedGaze

ON = GazeSample(dx=0.0, dy=0.0, lid_ratio=0.3)
RIGHT = GazeSample(dx=0.9, dy=0.0, lid_ratio=0.3)
CLOSED = GazeSample(dx=0.0, dy=0.0, lid_ratio=0.01)


def _looking_machine(step: int = 10) -> AttentionStateMachine:
    machine = AttentionStateMachine()
    machine.begin(0.0)
    for ts in range(0, 500, step):
        machine.tick(ON, float(ts))
    assert machine.state == AttentionState.LOOKING
    return machine


def test_absence_from_idle_becomes_away():
    machine = AttentionStateMachine()
    machine.begin(0.0)
    for ts in range(0, 800, 100):
        assert machine.tick(None, float(ts)) == AttentionState.IDLE
    assert machine.tick(None, 900.0) == AttentionState.AWAY
    # idle time is never recorded
    assert machine.durations[AttentionState.LOOKING] == 0.0
    assert machine.durations[AttentionState.AWAY] == 0.0


def test_presence_confirms_looking_after_window():
    machine = AttentionStateMachine()
    machine.begin(0.0)
    for ts in (0.0, 100.0, 200.0, 300.0):
        assert machine.tick(ON, ts) == AttentionState.IDLE
    assert machine.tick(ON, 400.0) == AttentionState.LOOKING


def test_sustained_on_target_gaze_only_reaches_looking():
    machine = AttentionStateMachine()
    machine.begin(0.0)
    rng = random.Random(7)
    seen = set()
    for ts in range(0, 5000, 33):
        sample = GazeSample(dx=rng.uniform(-0.6, 0.6), dy=rng.uniform(-0.5, 0.35), lid_ratio=0.3)
        seen.add(machine.tick(sample, float(ts)))
    assert machine.state == AttentionState.LOOKING
    assert AttentionState.AWAY not in seen


def test_off_direction_needs_full_hold_before_away():
    machine = _looking_machine()
    # smoothed dx crosses 0.6 on the fourth off-target frame (t=530)
    for ts in range(500, 1101, 10):
        assert machine.tick(RIGHT, float(ts)) == AttentionState.LOOKING
    for ts in range(1110, 1201, 10):
        machine.tick(RIGHT, float(ts))
    assert machine.state == AttentionState.AWAY
    assert machine.transitions[-1].reason == "off_direction"
    assert machine.durations[AttentionState.LOOKING] == 1130.0 - 400.0


def test_forced_away_needs_fresh_presence_window():
    machine = _looking_machine()
    for ts in range(500, 1540, 10):
        machine.tick(RIGHT, float(ts))
    assert machine.state == AttentionState.AWAY
    # presence re-armed at 1140, one tick after the forced Away at 1130
    assert machine.timers.present_since == 1140.0

    machine.tick(RIGHT, 1540.0)
    assert machine.state == AttentionState.LOOKING
    # the off-direction hold is still armed, so the next tick forces Away again
    machine.tick(RIGHT, 1550.0)
    assert machine.state == AttentionState.AWAY

    for ts in range(1560, 3000, 10):
        machine.tick(RIGHT, float(ts))
    assert machine.state == AttentionState.AWAY
    assert machine.durations[AttentionState.LOOKING] == 730.0 + 4 * 10.0
    assert machine.durations[AttentionState.AWAY] == 4 * 410.0

    # gaze returns; looking holds once the smoothed gaze is back on target
    for ts in range(3000, 4000, 10):
        machine.tick(ON, float(ts))
    assert machine.state == AttentionState.LOOKING


def test_off_target_presence_from_idle_records_away_time():
    for sample, reason in ((RIGHT, "off_direction"), (CLOSED, "eyes_closed")):
        machine = AttentionStateMachine()
        machine.begin(0.0)
        for ts in range(0, 5000, 33):
            machine.tick(sample, float(ts))
        machine.finish(5000.0)
        assert machine.transitions[0].state == AttentionState.LOOKING
        assert machine.transitions[0].ts == 429.0
        assert machine.transitions[1].state == AttentionState.AWAY
        assert machine.transitions[1].ts == 627.0
        assert machine.transitions[1].reason == reason
        assert machine.durations[AttentionState.AWAY] > machine.durations[AttentionState.LOOKING]


def test_looking_down_is_off_direction():
    machine = _looking_machine()
    down = GazeSample(dx=0.0, dy=0.8, lid_ratio=0.3)
    for ts in range(500, 2000, 10):
        machine.tick(down, float(ts))
    assert machine.state == AttentionState.AWAY


def test_long_eye_closure_forces_away_but_blink_does_not():
    machine = _looking_machine()
    for ts in range(500, 700, 10):
        machine.tick(CLOSED, float(ts))
    machine.tick(ON, 700.0)
    assert machine.state == AttentionState.LOOKING

    for ts in range(710, 1310, 10):
        machine.tick(CLOSED, float(ts))
    assert machine.state == AttentionState.LOOKING
    machine.tick(CLOSED, 1310.0)
    assert machine.state == AttentionState.AWAY
    assert machine.transitions[-1].reason == "eyes_closed"


def test_absence_after_presence_counts_from_last_seen():
    machine = _looking_machine()
    last_seen = 490.0
    assert machine.tick(None, last_seen + 700) == AttentionState.LOOKING
    assert machine.tick(None, last_seen + 800) == AttentionState.AWAY
    assert machine.durations[AttentionState.LOOKING] == last_seen + 800 - 400.0


def test_repeated_away_is_idempotent():
    machine = _looking_machine()
    machine.tick(None, 1300.0)
    assert machine.state == AttentionState.AWAY
    snapshot = dict(machine.durations)
    count = len(machine.transitions)
    for ts in range(1400, 3000, 100):
        machine.tick(None, float(ts))
    assert machine.durations == snapshot
    assert len(machine.transitions) == count


def test_recorded_time_never_exceeds_elapsed():
    rng = random.Random(42)
    machine = AttentionStateMachine()
    machine.begin(1000.0)
    ts = 1000.0
    for _ in range(3000):
        ts += rng.choice((16.0, 33.0, 50.0))
        roll = rng.random()
        if roll < 0.2:
            sample = None
        elif roll < 0.35:
            sample = RIGHT
        elif roll < 0.45:
            sample = CLOSED
        else:
            sample = ON
        machine.tick(sample, ts)
    machine.finish(ts)
    recorded = machine.durations[AttentionState.LOOKING] + machine.durations[AttentionState.AWAY]
    assert recorded <= ts - 1000.0


def test_finish_discards_timers_and_ignores_ticks():
    machine = _looking_machine()
    machine.tick(RIGHT, 500.0)
    machine.finish(600.0)
    assert machine.state == AttentionState.IDLE
    assert machine.timers.off_direction_since is None
    assert machine.timers.present_since is None
    looking = machine.durations[AttentionState.LOOKING]
    assert looking == 200.0

    machine.tick(ON, 5000.0)
    assert machine.state == AttentionState.IDLE
    assert machine.durations[AttentionState.LOOKING] == looking


def test_smoothing_starts_from_first_sample():
    gaze = SmoothedGaze(alpha=0.25)
    assert gaze.update(GazeSample(dx=0.4, dy=-0.2, lid_ratio=0.3)) == (0.4, -0.2)
    dx, dy = gaze.update(GazeSample(dx=0.8, dy=0.2, lid_ratio=0.3))
    assert abs(dx - 0.5) < 1e-9
    assert abs(dy - (-0.1)) < 1e-9


def test_thresholds_are_configurable():
    machine = AttentionStateMachine(thresholds=Thresholds(present_ms=100.0))
    machine.begin(0.0)
    machine.tick(ON, 0.0)
    assert machine.tick(ON, 100.0) == AttentionState.LOOKING
