from __future__ import annotations

import logging
import urllib.request
from pathlib import Path
from typing import Any, Optional

import cv2

from .config import Settings
from .landmarks import FaceLandmarks, extract_face

logger = logging.getLogger(__name__)

MODEL_URL = "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/latest/face_landmarker.task"
MODEL_PATH = Path(__file__).resolve().parent.parent / "artifacts" / "face_landmarker.task"


def _ensure_model(model_path: Path) -> None:
    if model_path.exists():
        return
    model_path.parent.mkdir(parents=True, exist_ok=True)
    logger.info("downloading face landmarker model to %s", model_path)
    urllib.request.urlretrieve(MODEL_URL, model_path)


class FaceLandmarker:
    """Thin wrapper over the MediaPipe face landmarker (refined iris points)."""

    def __init__(self, settings: Settings):
        import mediapipe as mp

        self.settings = settings
        self._mp = mp
        self.mode = "solutions" if getattr(mp, "solutions", None) else "tasks"

        if self.mode == "solutions":
            from mediapipe import solutions as mp_solutions  # type: ignore

            self.face_mesh = mp_solutions.face_mesh.FaceMesh(
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=settings.thresholds.min_detection_confidence,
                min_tracking_confidence=settings.thresholds.min_tracking_confidence,
            )
            self.landmarker = None
        else:
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision as mp_vision

            _ensure_model(MODEL_PATH)
            base_options = mp_python.BaseOptions(model_asset_path=str(MODEL_PATH))
            options = mp_vision.FaceLandmarkerOptions(
                base_options=base_options,
                output_face_blendshapes=False,
                output_facial_transformation_matrixes=False,
                num_faces=1,
                running_mode=mp_vision.RunningMode.IMAGE,
            )
            self.landmarker = mp_vision.FaceLandmarker.create_from_options(options)
            self.face_mesh = None

    def close(self) -> None:
        if self.face_mesh:
            self.face_mesh.close()
        if self.landmarker:
            self.landmarker.close()

    def detect(self, frame) -> Optional[Any]:
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        if self.mode == "solutions":
            return self.face_mesh.process(rgb) if self.face_mesh else None
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        return self.landmarker.detect(mp_image) if self.landmarker else None

    def infer(self, frame) -> Optional[FaceLandmarks]:
        return extract_face(self.detect(frame))
