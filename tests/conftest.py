"""Shared test fixtures for facenorm tests.

All images and observations are synthetic; NO ML models needed.
"""

import importlib.util
import sys
from pathlib import Path

import pytest

# Load helpers module from the tests directory without touching sys.path.
_helpers_path = Path(__file__).resolve().parent / "helpers.py"
_spec = importlib.util.spec_from_file_location("helpers", _helpers_path)
_helpers = importlib.util.module_from_spec(_spec)
sys.modules["helpers"] = _helpers
_spec.loader.exec_module(_helpers)

from helpers import create_frame, make_observation  # noqa: E402


@pytest.fixture
def frame_400():
    """400x400 UP frame with a synthetic face."""
    return create_frame(400, 400)


@pytest.fixture
def level_observation():
    """Level face in a 400x400 image, pupils at (150,180) and (250,180)."""
    return make_observation(
        400, 400,
        box_px=(100, 100, 200, 240),
        left_pupil=(150, 180),
        right_pupil=(250, 180),
        regions={
            "outerLips": [(170, 280), (200, 290), (230, 280)],
            "noseCrest": [(200, 190), (200, 230)],
        },
        confidence=0.9,
    )


@pytest.fixture
def output_dir(tmp_path):
    d = tmp_path / "crops"
    d.mkdir()
    return d


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path, monkeypatch):
    """Keep every facenorm directory inside the test's tmp dir."""
    monkeypatch.setenv("FACENORM_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("FACENORM_OUTPUT_DIR", str(tmp_path / "out"))
    monkeypatch.delenv("FACENORM_MODELS_DIR", raising=False)
