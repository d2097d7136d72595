import asyncio
import itertools

import numpy as np

from attention.accumulator import ActiveWindowEvent
from attention.config import Settings
from attention.service import TrackerService
from attention.state import AttentionState


class FakeCapture:
    def __init__(self):
        self.released = False

    def read(self):
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self.released = True


class EmptyLandmarker:
    def __init__(self):
        self.closed = False

    def infer(self, frame):
        return None

    def close(self):
        self.closed = True


class RecordingDb:
    def __init__(self):
        self.events = []

    def log_event(self, event_type, ts, details=None):
        self.events.append((event_type, ts, details))


def test_frame_loop_runs_until_stop():
    capture = FakeCapture()
    landmarker = EmptyLandmarker()
    db = RecordingDb()
    ticks = itertools.count(0, 100)

    async def scenario():
        service = TrackerService(
            Settings(),
            db=db,
            capture_factory=lambda settings: capture,
            landmarker_factory=lambda settings: landmarker,
            clock=lambda: float(next(ticks)),
        )
        queue = service.subscribe()
        await service.start_session()
        service.post_window_event(ActiveWindowEvent(owner="Code"))
        while service.session.state != AttentionState.AWAY:
            await asyncio.sleep(0.001)
        record = await service.stop_session()
        return service, queue, record

    service, queue, record = asyncio.run(asyncio.wait_for(scenario(), timeout=10))

    assert not service.running
    assert service.task is None
    assert capture.released
    assert landmarker.closed
    assert record.duration_looking_ms == 0
    assert "Code" in record.activity
    assert db.events and db.events[0][0] == "AWAY_START"
    assert not queue.empty()


def test_unavailable_camera_counts_as_absence():
    ticks = itertools.count(0, 200)

    def broken(settings):
        raise RuntimeError("no camera")

    async def scenario():
        settings = Settings()
        settings.camera.fps = 200
        service = TrackerService(
            settings,
            capture_factory=broken,
            landmarker_factory=broken,
            clock=lambda: float(next(ticks)),
        )
        await service.start_session()
        while service.session.state != AttentionState.AWAY:
            await asyncio.sleep(0.001)
        return await service.stop_session()

    record = asyncio.run(asyncio.wait_for(scenario(), timeout=10))
    assert record.focus_score_percent == 0
