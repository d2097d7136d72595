from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CameraSchema(BaseModel):
    index: int = 0
    width: int = 1280
    height: int = 720
    fps: int = 30


class AttentionSchema(BaseModel):
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


class TrackingSchema(BaseModel):
    browsers: List[str] = ["chrome", "chromium", "safari", "firefox", "edge"]


class FilterSettingsSchema(BaseModel):
    allow_priority: int = 1000
    block_priority: int = 500
    rule_id_base: int = 10000
    bypass_window_ms: float = 60_000.0


class BackendSchema(BaseModel):
    base_url: str = ""
    user_id: str = ""
    auth_token: str = ""
    poll_interval_seconds: float = 60.0
    timeout_seconds: float = 20.0


class StorageSchema(BaseModel):
    database_path: str = "artifacts/focus_tracker.db"


class SettingsSchema(BaseModel):
    camera: CameraSchema = CameraSchema()
    attention: AttentionSchema = AttentionSchema()
    tracking: TrackingSchema = TrackingSchema()
    filters: FilterSettingsSchema = FilterSettingsSchema()
    backend: BackendSchema = BackendSchema()
    storage: StorageSchema = StorageSchema()


class OwnerSchema(BaseModel):
    name: str = "unknown"


class ActiveWindowSchema(BaseModel):
    owner: OwnerSchema = OwnerSchema()
    url: Optional[str] = None
    title: Optional[str] = None


class SessionRecordSchema(BaseModel):
    id: Optional[int] = None
    start_time: float
    end_time: float
    duration_looking_ms: int
    duration_away_ms: int
    focus_score: int
    activity: Dict[str, int]
    sites: Dict[str, int] = {}
    remote_id: Optional[str] = None


class HistoryResponse(BaseModel):
    sessions: List[SessionRecordSchema]
    events: List[dict]


class SummaryResponse(BaseModel):
    avg_focus_score: int
    total_sessions: int
    current_streak: int
    recent: List[SessionRecordSchema]
    app_totals: Dict[str, int]


class FilterListsSchema(BaseModel):
    allowlist: List[str] = []
    blacklist: List[str] = []
    sessionOn: bool = False


class NavigationRequest(BaseModel):
    tabId: int
    url: str


class NavigationResponse(BaseModel):
    softBlock: bool
    reason: str
    blocked: Optional[dict] = None


class BypassRequest(BaseModel):
    tabId: int


class BypassResponse(BaseModel):
    tabId: int
    blockedUrl: Optional[str] = None
    expiresInMs: float = Field(default=60_000.0)
