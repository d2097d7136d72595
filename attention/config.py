from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


DEFAULT_BROWSERS = ("chrome", "chromium", "safari", "firefox", "edge")


@dataclass
class CameraConfig:
    index: int = 0
    width: int = 1280
    height: int = 720
    fps: int = 30


@dataclass
class Thresholds:
    absent_ms: float = 800.0
    present_ms: float = 400.0
    eyes_closed_ms: float = 600.0
    direction_hold_ms: float = 600.0
    blink_gap_ratio: float = 0.025
    gaze_x_max: float = 0.6
    gaze_y_max_down: float = 0.35
    gaze_y_max_up: float = 0.5
    smoothing_alpha: float = 0.25
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5


@dataclass
class TrackingConfig:
    browsers: Tuple[str, ...] = DEFAULT_BROWSERS


@dataclass
class FilterConfig:
    allow_priority: int = 1000
    block_priority: int = 500
    rule_id_base: int = 10000
    bypass_window_ms: float = 60_000.0


@dataclass
class BackendConfig:
    base_url: str = ""
    user_id: str = ""
    auth_token: str = ""
    poll_interval_seconds: float = 60.0
    timeout_seconds: float = 20.0


@dataclass
class StorageConfig:
    database_path: str = "artifacts/focus_tracker.db"


@dataclass
class Settings:
    camera: CameraConfig = field(default_factory=CameraConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @classmethod
    def from_dict(cls, payload: dict) -> "Settings":
        camera_data = payload.get("camera", {}) or {}
        attention_data = payload.get("attention", {}) or {}
        tracking_data = payload.get("tracking", {}) or {}
        filter_data = payload.get("filters", {}) or {}
        backend_data = payload.get("backend", {}) or {}
        storage_data = payload.get("storage", {}) or {}

        camera = CameraConfig(
            index=int(camera_data.get("index", 0)),
            width=int(camera_data.get("width", 1280)),
            height=int(camera_data.get("height", 720)),
            fps=int(camera_data.get("fps", 30)),
        )
        thresholds = Thresholds(
            absent_ms=float(attention_data.get("absent_ms", 800.0)),
            present_ms=float(attention_data.get("present_ms", 400.0)),
            eyes_closed_ms=float(attention_data.get("eyes_closed_ms", 600.0)),
            direction_hold_ms=float(attention_data.get("direction_hold_ms", 600.0)),
            blink_gap_ratio=float(attention_data.get("blink_gap_ratio", 0.025)),
            gaze_x_max=float(attention_data.get("gaze_x_max", 0.6)),
            gaze_y_max_down=float(attention_data.get("gaze_y_max_down", 0.35)),
            gaze_y_max_up=float(attention_data.get("gaze_y_max_up", 0.5)),
            smoothing_alpha=float(attention_data.get("smoothing_alpha", 0.25)),
            min_detection_confidence=float(attention_data.get("min_detection_confidence", 0.5)),
            min_tracking_confidence=float(attention_data.get("min_tracking_confidence", 0.5)),
        )
        tracking = TrackingConfig(
            browsers=tuple(str(name).lower() for name in tracking_data.get("browsers", DEFAULT_BROWSERS)),
        )
        filters = FilterConfig(
            allow_priority=int(filter_data.get("allow_priority", 1000)),
            block_priority=int(filter_data.get("block_priority", 500)),
            rule_id_base=int(filter_data.get("rule_id_base", 10000)),
            bypass_window_ms=float(filter_data.get("bypass_window_ms", 60_000.0)),
        )
        backend = BackendConfig(
            base_url=str(backend_data.get("base_url", "") or ""),
            user_id=str(backend_data.get("user_id", "") or ""),
            auth_token=str(backend_data.get("auth_token", "") or ""),
            poll_interval_seconds=float(backend_data.get("poll_interval_seconds", 60.0)),
            timeout_seconds=float(backend_data.get("timeout_seconds", 20.0)),
        )
        storage = StorageConfig(
            database_path=str(storage_data.get("database_path", "artifacts/focus_tracker.db")),
        )
        return cls(
            camera=camera,
            thresholds=thresholds,
            tracking=tracking,
            filters=filters,
            backend=backend,
            storage=storage,
        )

    def to_dict(self) -> dict:
        return {
            "camera": {
                "index": self.camera.index,
                "width": self.camera.width,
                "height": self.camera.height,
                "fps": self.camera.fps,
            },
            "attention": {
                "absent_ms": self.thresholds.absent_ms,
                "present_ms": self.thresholds.present_ms,
                "eyes_closed_ms": self.thresholds.eyes_closed_ms,
                "direction_hold_ms": self.thresholds.direction_hold_ms,
                "blink_gap_ratio": self.thresholds.blink_gap_ratio,
                "gaze_x_max": self.thresholds.gaze_x_max,
                "gaze_y_max_down": self.thresholds.gaze_y_max_down,
                "gaze_y_max_up": self.thresholds.gaze_y_max_up,
                "smoothing_alpha": self.thresholds.smoothing_alpha,
                "min_detection_confidence": self.thresholds.min_detection_confidence,
                "min_tracking_confidence": self.thresholds.min_tracking_confidence,
            },
            "tracking": {"browsers": list(self.tracking.browsers)},
            "filters": {
                "allow_priority": self.filters.allow_priority,
                "block_priority": self.filters.block_priority,
                "rule_id_base": self.filters.rule_id_base,
                "bypass_window_ms": self.filters.bypass_window_ms,
            },
            "backend": {
                "base_url": self.backend.base_url,
                "user_id": self.backend.user_id,
                "auth_token": self.backend.auth_token,
                "poll_interval_seconds": self.backend.poll_interval_seconds,
                "timeout_seconds": self.backend.timeout_seconds,
            },
            "storage": {"database_path": self.storage.database_path},
        }
