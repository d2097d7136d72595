from types import SimpleNamespace

import pytest

from attention.landmarks import REQUIRED_POINTS, analyze, extract_face

WIDTH = 1000
HEIGHT = 1000


def _face_points(iris_shift_x=0.0, iris_shift_y=0.0, lid_gap=0.02):
    points = [{"x": 0.5, "y": 0.5, "z": 0.0} for _ in range(REQUIRED_POINTS)]

    def put(index, x, y):
        points[index] = {"x": x, "y": y, "z": 0.0}

    half = lid_gap / 2.0
    # left eye: 60px wide, centred at (430, 500)
    put(33, 0.40, 0.50)
    put(133, 0.46, 0.50)
    put(159, 0.43, 0.50 - half)
    put(145, 0.43, 0.50 + half)
    for index in range(468, 473):
        put(index, 0.43 + iris_shift_x, 0.50 + iris_shift_y)
    # right eye: mirrored at (570, 500)
    put(362, 0.54, 0.50)
    put(263, 0.60, 0.50)
    put(386, 0.57, 0.50 - half)
    put(374, 0.57, 0.50 + half)
    for index in range(473, 478):
        put(index, 0.57 + iris_shift_x, 0.50 + iris_shift_y)
    return points


def test_centered_iris_gives_zero_offset():
    face = extract_face({"faceLandmarks": [_face_points()]})
    sample = analyze(face, WIDTH, HEIGHT)
    assert sample.dx == pytest.approx(0.0, abs=1e-9)
    assert sample.dy == pytest.approx(0.0, abs=1e-9)
    assert sample.lid_ratio == pytest.approx(20.0 / 60.0)


def test_iris_offset_is_normalized_by_eye_size():
    face = extract_face({"faceLandmarks": [_face_points(iris_shift_x=0.03, iris_shift_y=-0.005)]})
    sample = analyze(face, WIDTH, HEIGHT)
    assert sample.dx == pytest.approx(30.0 / 60.0)
    assert sample.dy == pytest.approx(-5.0 / 20.0)


def test_closed_lids_give_low_ratio():
    face = extract_face({"faceLandmarks": [_face_points(lid_gap=0.0)]})
    sample = analyze(face, WIDTH, HEIGHT)
    assert sample.lid_ratio == pytest.approx(0.0)
    assert sample.lid_ratio < 0.025


def test_degenerate_geometry_does_not_divide_by_zero():
    points = [{"x": 0.5, "y": 0.5, "z": 0.0} for _ in range(REQUIRED_POINTS)]
    sample = analyze(extract_face(points), WIDTH, HEIGHT)
    assert sample.dx == 0.0
    assert sample.dy == 0.0
    assert sample.lid_ratio == 0.0


def test_accepts_attribute_points_and_landmarker_results():
    points = [SimpleNamespace(x=p["x"], y=p["y"], z=0.0) for p in _face_points(iris_shift_x=0.03)]
    result = SimpleNamespace(face_landmarks=[points])
    sample = analyze(extract_face(result), WIDTH, HEIGHT)
    assert sample.dx == pytest.approx(0.5)


def test_missing_or_partial_landmarks_mean_no_face():
    assert extract_face(None) is None
    assert extract_face({"faceLandmarks": []}) is None
    assert extract_face({"faceLandmarks": [_face_points()[:400]]}) is None
    assert extract_face(SimpleNamespace(face_landmarks=[])) is None
