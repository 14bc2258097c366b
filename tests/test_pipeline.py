"""Tests for the observation assembler."""

import json
import math
from unittest.mock import Mock, patch
from urllib.parse import urlparse
from urllib.request import url2pathname

import cv2
import numpy as np
import pytest

from facenorm.config import AlignConfig
from facenorm.errors import DetectionError, FaceNormError, SourceError, UnsupportedSourceError
from facenorm.pipeline import FacePipeline, create_default_pipeline
from facenorm.remap import remap_landmarks
from facenorm.types import ImageFrame, LandmarkRegion, Observation, Orientation, Rect

from helpers import (
    QualityDetector,
    StaticDetector,
    StaticLoader,
    UriDetector,
    create_frame,
    make_observation,
)


def _uri_to_path(uri: str) -> str:
    return url2pathname(urlparse(uri).path)


def _pipeline(frames, detector, output_dir, **kwargs):
    return FacePipeline(
        loader=StaticLoader(frames),
        detector=detector,
        output_dir=output_dir,
        **kwargs,
    )


class TestEndToEnd:
    """Full chain on a synthetic 400x400 image."""

    def test_single_face(self, frame_400, level_observation, output_dir):
        pipeline = _pipeline({"a": frame_400}, StaticDetector([level_observation]), output_dir)
        faces = pipeline.process_image("a")

        assert len(faces) == 1
        face = faces[0]
        assert face.roll_angle == pytest.approx(0.0, abs=1e-9)
        assert face.confidence == pytest.approx(0.9)
        assert face.capture_quality is None
        assert face.contains_upper_body is False

        crop = cv2.imread(_uri_to_path(face.cropped_uri))
        assert crop.shape == (112, 112, 3)

        left = face.landmarks[LandmarkRegion.LEFT_PUPIL][0]
        assert left.x == pytest.approx(30.2946 + 8, abs=1.0)
        assert left.y == pytest.approx(51.6963, abs=1.0)

    def test_bounding_box_in_source_pixels(self, frame_400, level_observation, output_dir):
        pipeline = _pipeline({"a": frame_400}, StaticDetector([level_observation]), output_dir)
        face = pipeline.process_image("a")[0]

        assert face.bounding_box.x == pytest.approx(100)
        assert face.bounding_box.y == pytest.approx(100)
        assert face.bounding_box.width == pytest.approx(200)
        assert face.bounding_box.height == pytest.approx(240)

    def test_crop_is_straightened(self, output_dir):
        """A tilted face is levelled in the written crop."""
        eyes = ((150, 170), (250, 200))
        frame = ImageFrame(image=_dark_eyes(400, 400, eyes), uri="tilted")
        obs = make_observation(400, 400, (100, 100, 200, 240), *eyes)
        pipeline = _pipeline({"t": frame}, StaticDetector([obs]), output_dir)

        face = pipeline.process_image("t")[0]
        assert face.roll_angle == pytest.approx(math.atan2(30, 100))

        left = face.landmarks[LandmarkRegion.LEFT_PUPIL][0]
        right = face.landmarks[LandmarkRegion.RIGHT_PUPIL][0]
        assert left.y == pytest.approx(right.y, abs=1e-6)

        crop = cv2.imread(_uri_to_path(face.cropped_uri), cv2.IMREAD_GRAYSCALE)
        for p in (left, right):
            x, y = int(round(p.x)), int(round(p.y))
            assert crop[y, x] < 90

    def test_roll_correction_scales_applied_angle(self, output_dir):
        eyes = ((150, 170), (250, 200))
        frame = ImageFrame(image=_dark_eyes(400, 400, eyes))
        obs = make_observation(400, 400, (100, 100, 200, 240), *eyes)
        pipeline = _pipeline(
            {"t": frame}, StaticDetector([obs]), output_dir,
            config=AlignConfig(roll_correction=0.0),
        )

        face = pipeline.process_image("t")[0]
        # measured roll is still reported
        assert face.roll_angle == pytest.approx(math.atan2(30, 100))
        left = face.landmarks[LandmarkRegion.LEFT_PUPIL][0]
        right = face.landmarks[LandmarkRegion.RIGHT_PUPIL][0]
        assert right.y - left.y > 5

    def test_to_dict_shape(self, frame_400, level_observation, output_dir):
        pipeline = _pipeline({"a": frame_400}, StaticDetector([level_observation]), output_dir)
        data = pipeline.process_image("a")[0].to_dict()

        assert set(data) == {
            "boundingBox", "rollAngle", "confidence", "croppedUri",
            "originalAssetContainsHumanUpperBody", "landmarks",
        }
        assert data["landmarks"]["mouth"] == data["landmarks"]["outerLips"]
        json.dumps(data)


def _dark_eyes(width, height, eyes):
    image = np.full((height, width, 3), 200, dtype=np.uint8)
    for x, y in eyes:
        cv2.circle(image, (int(x), int(y)), 6, (0, 0, 0), -1)
    return image


class TestPerFaceIsolation:
    """A bad face never fails its siblings or the image."""

    def test_degenerate_face_dropped(self, frame_400, level_observation, output_dir):
        bad = make_observation(400, 400, (100, 100, 200, 200), (200, 200), (200, 200))
        pipeline = _pipeline({"a": frame_400}, StaticDetector([bad, level_observation]), output_dir)
        faces = pipeline.process_image("a")
        assert len(faces) == 1
        assert faces[0].confidence == pytest.approx(0.9)

    def test_face_without_landmarks_skipped(self, frame_400, level_observation, output_dir):
        bare = Observation(bounding_box=Rect(0.1, 0.1, 0.2, 0.2))
        pipeline = _pipeline({"a": frame_400}, StaticDetector([bare, level_observation]), output_dir)
        assert len(pipeline.process_image("a")) == 1

    def test_fallback_face_kept(self, frame_400, output_dir):
        obs = Observation(bounding_box=Rect(0.3, 0.3, 0.4, 0.4), landmarks={}, roll=0.1)
        pipeline = _pipeline({"a": frame_400}, StaticDetector([obs]), output_dir)
        faces = pipeline.process_image("a")

        assert len(faces) == 1
        assert faces[0].roll_angle == pytest.approx(0.1)
        assert faces[0].landmarks == {}

    def test_crop_indices_in_file_names(self, frame_400, level_observation, output_dir):
        pipeline = _pipeline(
            {"a": frame_400}, StaticDetector([level_observation, level_observation]), output_dir
        )
        uris = [f.cropped_uri for f in pipeline.process_image("a")]
        assert uris[0].endswith("_0.jpg")
        assert uris[1].endswith("_1.jpg")

    def test_raster_error_drops_face(self, frame_400, level_observation, output_dir):
        from facenorm.errors import RasterError

        pipeline = _pipeline({"a": frame_400}, StaticDetector([level_observation]), output_dir)
        with patch("facenorm.pipeline.render_crop", side_effect=RasterError("JPG conversion failed")):
            assert pipeline.process_image("a") == []

    def test_non_finite_box_dropped(self, frame_400, level_observation, output_dir):
        bad = Observation(bounding_box=Rect(0.4, 0.4, math.inf, 0.2), landmarks={})
        pipeline = _pipeline({"a": frame_400}, StaticDetector([bad, level_observation]), output_dir)
        faces = pipeline.process_image("a")
        assert len(faces) == 1
        assert faces[0].cropped_uri.endswith("_1.jpg")

    def test_unexpected_error_drops_only_that_face(self, frame_400, level_observation, output_dir):
        real_remap = remap_landmarks
        calls = []

        def remap_once_broken(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise ValueError("corrupt landmark table")
            return real_remap(*args, **kwargs)

        pipeline = _pipeline(
            {"a": frame_400}, StaticDetector([level_observation, level_observation]), output_dir
        )
        with patch("facenorm.pipeline.remap_landmarks", side_effect=remap_once_broken):
            faces = pipeline.process_image("a")
        assert len(faces) == 1
        assert faces[0].cropped_uri.endswith("_1.jpg")

    def test_no_faces(self, frame_400, output_dir):
        pipeline = _pipeline({"a": frame_400}, StaticDetector([]), output_dir)
        assert pipeline.process_image("a") == []


class TestCollaborators:
    """Detector, quality and body collaborators."""

    def test_detector_error_wrapped(self, frame_400, output_dir):
        pipeline = _pipeline({"a": frame_400}, StaticDetector(error=RuntimeError("boom")), output_dir)
        with pytest.raises(DetectionError) as exc_info:
            pipeline.process_image("a")
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_loader_error_wrapped(self, output_dir):
        pipeline = _pipeline({"a": KeyError("x")}, StaticDetector([]), output_dir)
        with pytest.raises(SourceError):
            pipeline.process_image("a")

    def test_source_error_propagates(self, output_dir):
        err = UnsupportedSourceError("ftp")
        pipeline = _pipeline({"a": err}, StaticDetector([]), output_dir)
        with pytest.raises(UnsupportedSourceError) as exc_info:
            pipeline.process_image("a")
        assert exc_info.value is err

    def test_detector_receives_native_orientation(self, output_dir):
        frame = create_frame(300, 400, orientation=Orientation.RIGHT)
        detector = StaticDetector([])
        _pipeline({"a": frame}, detector, output_dir).process_image("a")
        assert detector.calls == [Orientation.RIGHT]

    def test_quality_pass_fills_missing(self, frame_400, level_observation, output_dir):
        detector = QualityDetector([level_observation], scores=[0.75])
        faces = _pipeline({"a": frame_400}, detector, output_dir).process_image("a")
        assert detector.quality_calls == 1
        assert faces[0].capture_quality == pytest.approx(0.75)

    def test_quality_pass_skipped_when_inline(self, frame_400, output_dir):
        obs = make_observation(
            400, 400, (100, 100, 200, 240), (150, 180), (250, 180), capture_quality=0.4,
        )
        detector = QualityDetector([obs], scores=[0.9])
        faces = _pipeline({"a": frame_400}, detector, output_dir).process_image("a")
        assert detector.quality_calls == 0
        assert faces[0].capture_quality == pytest.approx(0.4)

    def test_quality_pass_disabled(self, frame_400, level_observation, output_dir):
        detector = QualityDetector([level_observation], scores=[0.75])
        pipeline = _pipeline(
            {"a": frame_400}, detector, output_dir, config=AlignConfig(request_quality=False),
        )
        faces = pipeline.process_image("a")
        assert detector.quality_calls == 0
        assert faces[0].capture_quality is None

    def test_quality_failure_is_best_effort(self, frame_400, level_observation, output_dir):
        detector = QualityDetector([level_observation], quality_error=RuntimeError("no quality"))
        faces = _pipeline({"a": frame_400}, detector, output_dir).process_image("a")
        assert len(faces) == 1
        assert faces[0].capture_quality is None

    def test_upper_body_flag(self, frame_400, level_observation, output_dir):
        body = Mock()
        body.contains_upper_body.return_value = True
        pipeline = _pipeline(
            {"a": frame_400}, StaticDetector([level_observation]), output_dir, body_detector=body,
        )
        faces = pipeline.process_image("a")
        assert faces[0].contains_upper_body is True
        body.contains_upper_body.assert_called_once()

    def test_upper_body_not_run_without_faces(self, frame_400, output_dir):
        body = Mock()
        pipeline = _pipeline({"a": frame_400}, StaticDetector([]), output_dir, body_detector=body)
        pipeline.process_image("a")
        body.contains_upper_body.assert_not_called()


class TestBatch:
    """Tests for process_images()."""

    def test_order_and_isolated_failure(self, output_dir, level_observation):
        frames = {u: create_frame(400, 400, uri=u) for u in ("a", "b", "c")}
        detector = UriDetector({
            id(frames["a"].image): [level_observation],
            id(frames["b"].image): RuntimeError("detector crashed"),
            id(frames["c"].image): [level_observation, level_observation],
        })
        pipeline = _pipeline(frames, detector, output_dir, config=AlignConfig(max_workers=3))

        results = pipeline.process_images(["a", "b", "c"])

        assert [r.uri for r in results] == ["a", "b", "c"]
        assert results[0].ok and len(results[0].faces) == 1
        assert not results[1].ok
        assert results[1].error.code == "detection"
        assert results[1].faces == []
        assert results[2].ok and len(results[2].faces) == 2

    def test_non_finite_observation_keeps_batch(self, output_dir, level_observation):
        frames = {u: create_frame(400, 400, uri=u) for u in ("a", "b", "c")}
        detector = UriDetector({
            id(frames["a"].image): [level_observation],
            id(frames["b"].image): [Observation(bounding_box=Rect(math.nan, 0.4, 0.2, 0.2), landmarks={})],
            id(frames["c"].image): [level_observation],
        })
        pipeline = _pipeline(frames, detector, output_dir, config=AlignConfig(max_workers=3))

        results = pipeline.process_images(["a", "b", "c"])

        assert [r.uri for r in results] == ["a", "b", "c"]
        assert all(r.ok for r in results)
        assert [len(r.faces) for r in results] == [1, 0, 1]

    def test_unexpected_error_lands_in_slot(self, output_dir, level_observation):
        frames = {u: create_frame(400, 400, uri=u) for u in ("a", "b", "c")}
        pipeline = _pipeline(frames, StaticDetector([level_observation]), output_dir)
        real_process_frame = pipeline.process_frame

        def process_frame(frame):
            if frame.uri == "b":
                raise ValueError("corrupt buffer")
            return real_process_frame(frame)

        with patch.object(pipeline, "process_frame", side_effect=process_frame):
            results = pipeline.process_images(["a", "b", "c"])

        assert [r.uri for r in results] == ["a", "b", "c"]
        assert results[0].ok and results[2].ok
        assert isinstance(results[1].error, FaceNormError)
        assert results[1].error.code == "facenorm"
        assert "corrupt buffer" in results[1].error.message
        assert isinstance(results[1].error.__cause__, ValueError)

    def test_source_failure_in_slot(self, output_dir, frame_400, level_observation):
        frames = {"ok": frame_400, "missing": SourceError("Image file not found: missing")}
        pipeline = _pipeline(frames, StaticDetector([level_observation]), output_dir)

        results = pipeline.process_images(["missing", "ok"])
        assert results[0].error.code == "source"
        assert results[1].ok
        assert results[0].to_dict()["error"] == {
            "code": "source",
            "message": "Image file not found: missing",
        }

    def test_empty_batch(self, output_dir):
        pipeline = _pipeline({}, StaticDetector([]), output_dir)
        assert pipeline.process_images([]) == []

    def test_many_images_single_worker(self, output_dir, level_observation):
        frames = {str(i): create_frame(200, 200, uri=str(i)) for i in range(5)}
        pipeline = _pipeline(
            frames, StaticDetector([]), output_dir, config=AlignConfig(max_workers=1),
        )
        results = pipeline.process_images([str(i) for i in range(5)])
        assert [r.uri for r in results] == [str(i) for i in range(5)]


class TestDefaultPipeline:
    """Tests for create_default_pipeline()."""

    def test_wiring(self, tmp_path):
        from facenorm.backends.mediapipe_face import MediaPipeFaceDetector
        from facenorm.backends.opencv_body import HaarUpperBodyDetector

        pipeline = create_default_pipeline(output_dir=tmp_path, library_root=tmp_path)
        assert isinstance(pipeline.detector, MediaPipeFaceDetector)
        assert isinstance(pipeline.body_detector, HaarUpperBodyDetector)
        assert set(pipeline.loader.schemes) == {"file", "ph"}

    def test_without_body(self, tmp_path):
        pipeline = create_default_pipeline(output_dir=tmp_path, with_body=False)
        assert pipeline.body_detector is None
