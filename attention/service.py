from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Callable, List, Optional

import cv2

from .accumulator import ActiveWindowEvent
from .config import Settings
from .session import FocusSession, LiveMetrics, Session, now_ms
from .state import Transition

logger = logging.getLogger(__name__)


def _open_capture(settings: Settings) -> cv2.VideoCapture:
    capture = cv2.VideoCapture(settings.camera.index)
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, settings.camera.width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, settings.camera.height)
    if settings.camera.fps:
        capture.set(cv2.CAP_PROP_FPS, settings.camera.fps)
    return capture


def _open_landmarker(settings: Settings):
    from .landmarker import FaceLandmarker

    return FaceLandmarker(settings)


class TrackerService:
    """
    Drives the frame loop for the current focus session.

    Everything that mutates the session runs on the event loop that owns
    this service: camera reads and landmark inference are pushed to the
    default executor and their results are applied back on the loop.
    """

    def __init__(
        self,
        settings: Settings,
        db=None,
        capture_factory: Callable[[Settings], Any] = _open_capture,
        landmarker_factory: Callable[[Settings], Any] = _open_landmarker,
        clock: Callable[[], float] = now_ms,
    ):
        self.settings = settings
        self.db = db
        self.capture_factory = capture_factory
        self.landmarker_factory = landmarker_factory
        self.clock = clock

        self.session = Session(settings=settings, clock=clock, on_transition=self._log_transition)
        self.capture: Optional[Any] = None
        self.landmarker: Optional[Any] = None
        self.task: Optional[asyncio.Task] = None

        self.listeners: List[asyncio.Queue] = []
        self.fps = 0.0
        self.last_record: Optional[FocusSession] = None

    @property
    def running(self) -> bool:
        return self.session.running

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings
        if not self.session.running:
            self.session = Session(settings=settings, clock=self.clock, on_transition=self._log_transition)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self.listeners.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self.listeners:
            self.listeners.remove(queue)

    def _broadcast(self, metrics: LiveMetrics) -> None:
        payload = json.dumps(metrics.to_dict())
        for queue in self.listeners:
            self._push_queue(queue, payload)

    @staticmethod
    def _push_queue(queue: asyncio.Queue, payload: str) -> None:
        try:
            if queue.qsize() > 2:
                queue.get_nowait()
            queue.put_nowait(payload)
        except (asyncio.QueueFull, asyncio.QueueEmpty):
            return

    def _log_transition(self, transition: Transition) -> None:
        if not self.db:
            return
        self.db.log_event(
            f"{transition.state.value.upper()}_START",
            transition.ts / 1000.0,
            json.dumps({"from": transition.previous.value, "reason": transition.reason}),
        )

    def metrics(self) -> LiveMetrics:
        return self.session.metrics(fps=self.fps)

    async def start_session(self) -> None:
        self.session.start()
        loop = asyncio.get_running_loop()
        try:
            self.capture = await loop.run_in_executor(None, self.capture_factory, self.settings)
            self.landmarker = await loop.run_in_executor(None, self.landmarker_factory, self.settings)
        except Exception:
            # camera or model unavailable: every frame is treated as absent
            logger.warning("camera or landmarker unavailable, tracking presence as absent", exc_info=True)
            self.landmarker = None
        self.task = asyncio.create_task(self._run())

    async def stop_session(self) -> FocusSession:
        task, self.task = self.task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._release()
        record = self.session.stop()
        self.last_record = record
        self._broadcast(self.session.metrics(now=record.end_time))
        return record

    def pause_session(self) -> None:
        self.session.pause()

    def resume_session(self) -> None:
        self.session.resume()

    def post_window_event(self, event: ActiveWindowEvent) -> None:
        self.session.post_window_event(event)

    def _release(self) -> None:
        if self.capture is not None:
            self.capture.release()
            self.capture = None
        if self.landmarker is not None:
            self.landmarker.close()
            self.landmarker = None

    async def _read_face(self, loop: asyncio.AbstractEventLoop):
        if self.capture is None or self.landmarker is None:
            await asyncio.sleep(1.0 / max(self.settings.camera.fps, 1))
            return None, self.settings.camera.width, self.settings.camera.height

        ok, frame = await loop.run_in_executor(None, self.capture.read)
        if not ok or frame is None:
            await asyncio.sleep(0.05)
            return None, self.settings.camera.width, self.settings.camera.height

        height, width = frame.shape[:2]
        face = await loop.run_in_executor(None, self.landmarker.infer, frame)
        return face, width, height

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        last_ts = time.time()

        while self.session.running:
            if self.session.paused:
                await asyncio.sleep(0.1)
                continue

            face, width, height = await self._read_face(loop)
            if not self.session.running:
                break

            now = time.time()
            dt = now - last_ts
            self.fps = 1.0 / dt if dt > 0 else 0.0
            last_ts = now

            self.session.tick(face, width, height)
            self._broadcast(self.metrics())
            await asyncio.sleep(0)
