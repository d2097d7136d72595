from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np


LEFT_CORNERS = (33, 133)
RIGHT_CORNERS = (362, 263)
LEFT_LIDS = (159, 145)
RIGHT_LIDS = (386, 374)
LEFT_IRIS = (468, 469, 470, 471, 472)
RIGHT_IRIS = (473, 474, 475, 476, 477)

REQUIRED_POINTS = max(LEFT_IRIS + RIGHT_IRIS) + 1


@dataclass(frozen=True)
class GazeSample:
    dx: float
    dy: float
    lid_ratio: float


@dataclass(frozen=True)
class EyeLandmarks:
    """Normalized (x, y) points of one eye, in image-relative units."""

    corners: np.ndarray  # (2, 2)
    lids: np.ndarray  # (2, 2): top, bottom
    iris: np.ndarray  # (5, 2)


@dataclass(frozen=True)
class FaceLandmarks:
    left: EyeLandmarks
    right: EyeLandmarks


def _point(raw: Any) -> tuple[float, float]:
    if isinstance(raw, dict):
        return float(raw["x"]), float(raw["y"])
    if hasattr(raw, "x"):
        return float(raw.x), float(raw.y)
    return float(raw[0]), float(raw[1])


def _iter_landmarks(face_landmarks: Any) -> Sequence[Any]:
    return getattr(face_landmarks, "landmark", face_landmarks)


def _first_face(result: Any) -> Optional[Sequence[Any]]:
    if result is None:
        return None
    if isinstance(result, dict):
        faces = result.get("faceLandmarks") or result.get("face_landmarks")
    elif hasattr(result, "face_landmarks"):
        faces = result.face_landmarks
    elif hasattr(result, "multi_face_landmarks"):
        faces = result.multi_face_landmarks
    else:
        return _iter_landmarks(result)
    if not faces:
        return None
    return _iter_landmarks(faces[0])


def _pick(points: Sequence[Any], indices: Sequence[int]) -> np.ndarray:
    return np.array([_point(points[i]) for i in indices], dtype=np.float64)


def extract_face(result: Any) -> Optional[FaceLandmarks]:
    """
    Converts a landmarker result (or a bare point list) into FaceLandmarks.

    Returns None when no face was detected or the point layout is too short
    to contain the refined iris points; callers treat that as an absent frame.
    """
    points = _first_face(result)
    if points is None or len(points) < REQUIRED_POINTS:
        return None
    try:
        left = EyeLandmarks(
            corners=_pick(points, LEFT_CORNERS),
            lids=_pick(points, LEFT_LIDS),
            iris=_pick(points, LEFT_IRIS),
        )
        right = EyeLandmarks(
            corners=_pick(points, RIGHT_CORNERS),
            lids=_pick(points, RIGHT_LIDS),
            iris=_pick(points, RIGHT_IRIS),
        )
    except (KeyError, IndexError, TypeError, ValueError):
        return None
    return FaceLandmarks(left=left, right=right)


def _eye_signal(eye: EyeLandmarks, width: float, height: float) -> tuple[float, float, float]:
    scale = np.array([width, height], dtype=np.float64)
    c0, c1 = eye.corners
    top, bottom = eye.lids

    ew = max(float(np.linalg.norm((c0 - c1) * scale)), 1.0)
    eh_raw = float(np.linalg.norm((top - bottom) * scale))
    eh = max(eh_raw, 1.0)

    ec_x = (c0[0] + c1[0]) / 2.0
    ec_y = (top[1] + bottom[1]) / 2.0
    ic_x, ic_y = eye.iris.mean(axis=0)

    dx = (ic_x - ec_x) * width / ew
    dy = (ic_y - ec_y) * height / eh
    return float(dx), float(dy), eh_raw / ew


def analyze(face: FaceLandmarks, width: float, height: float) -> GazeSample:
    left_dx, left_dy, left_lid = _eye_signal(face.left, width, height)
    right_dx, right_dy, right_lid = _eye_signal(face.right, width, height)
    return GazeSample(
        dx=(left_dx + right_dx) / 2.0,
        dy=(left_dy + right_dy) / 2.0,
        lid_ratio=(left_lid + right_lid) / 2.0,
    )
