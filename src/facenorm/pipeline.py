"""Observation assembler: URI -> detected, aligned and cropped faces.

One image is one unit of work. Within a unit the detector runs once, then
every observation goes through pose -> align -> raster -> remap on its
own; a face that fails at any step is dropped without failing the
image. Batches fan images out over a thread pool and return one slot
per input, in input order.

Example:
    >>> from facenorm import create_default_pipeline
    >>> pipeline = create_default_pipeline(output_dir="/tmp/faces")
    >>> for result in pipeline.process_images(["a.jpg", "b.jpg"]):
    ...     print(result.uri, len(result.faces), result.error)
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from facenorm.align import compute_aligned_crop
from facenorm.backends.base import FaceDetector, QualityEstimator, UpperBodyDetector
from facenorm.config import AlignConfig
from facenorm.errors import DetectionError, FaceNormError, GeometryError, RasterError, SourceError
from facenorm.geometry import oriented_rect_to_top_left
from facenorm.pose import estimate_roll
from facenorm.raster import render_crop
from facenorm.remap import remap_landmarks
from facenorm.sources.base import AssetLoader
from facenorm.types import FaceResult, ImageFrame, ImageResult, Observation

logger = logging.getLogger(__name__)


class FacePipeline:
    """Detect and normalize faces.

    Args:
        loader: Resolves URIs into frames.
        detector: Face + landmark detector.
        body_detector: Optional upper-body detector for the image-level flag.
        config: Alignment and output settings.
        output_dir: Where crops are written (default: output dir).
    """

    def __init__(
        self,
        loader: AssetLoader,
        detector: FaceDetector,
        body_detector: Optional[UpperBodyDetector] = None,
        config: Optional[AlignConfig] = None,
        output_dir: Optional[Union[str, Path]] = None,
    ):
        self.loader = loader
        self.detector = detector
        self.body_detector = body_detector
        self.config = config or AlignConfig()
        self.output_dir = Path(output_dir) if output_dir is not None else None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _detect(self, frame: ImageFrame) -> List[Observation]:
        try:
            observations = self.detector.detect(frame.image, frame.orientation)
        except FaceNormError:
            raise
        except Exception as e:
            raise DetectionError(f"Face detection failed for {frame.uri or '<frame>'}: {e}") from e
        return list(observations or [])

    def _with_quality(self, frame: ImageFrame, observations: List[Observation]) -> List[Observation]:
        if not self.config.request_quality or not observations:
            return observations
        if all(o.capture_quality is not None for o in observations):
            return observations
        if not isinstance(self.detector, QualityEstimator):
            return observations

        try:
            scores = self.detector.estimate_quality(frame.image, frame.orientation, observations)
        except Exception as e:
            logger.debug("Capture quality pass failed, quality left absent: %s", e)
            return observations

        if scores is None or len(scores) != len(observations):
            logger.debug("Capture quality pass returned a mismatched result, ignored")
            return observations

        merged = []
        for obs, score in zip(observations, scores):
            if obs.capture_quality is None and score is not None:
                obs = replace(obs, capture_quality=float(score))
            merged.append(obs)
        return merged

    def _contains_upper_body(self, frame: ImageFrame) -> bool:
        if self.body_detector is None:
            return False
        try:
            return bool(self.body_detector.contains_upper_body(frame.image, frame.orientation))
        except Exception as e:
            raise DetectionError(f"Upper-body detection failed for {frame.uri or '<frame>'}: {e}") from e

    # ------------------------------------------------------------------
    # Per-face
    # ------------------------------------------------------------------

    def _process_face(
        self,
        frame: ImageFrame,
        observation: Observation,
        face_index: int,
        contains_upper_body: bool,
        upright: np.ndarray,
    ) -> FaceResult:
        config = self.config
        roll = estimate_roll(observation, frame.width, frame.height)
        applied = roll * config.roll_correction

        crop = compute_aligned_crop(observation, frame, applied, config)
        uri = render_crop(
            frame, crop, face_index,
            config=config, output_dir=self.output_dir, upright=upright,
        )
        landmarks = remap_landmarks(observation, frame, crop, config.output_side)
        bbox = oriented_rect_to_top_left(
            observation.bounding_box, frame.orientation, frame.width, frame.height
        )

        return FaceResult(
            bounding_box=bbox,
            roll_angle=roll,
            confidence=observation.confidence,
            cropped_uri=uri,
            landmarks=landmarks,
            capture_quality=observation.capture_quality,
            contains_upper_body=contains_upper_body,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def process_frame(self, frame: ImageFrame) -> List[FaceResult]:
        """Run detection and normalization on an already decoded frame.

        Raises:
            DetectionError: The detector (or body detector) failed.
        """
        observations = self._detect(frame)
        logger.debug("%s: %d observation(s)", frame.uri or "<frame>", len(observations))
        if not observations:
            return []

        observations = self._with_quality(frame, observations)
        contains_upper_body = self._contains_upper_body(frame)
        upright = frame.upright()

        faces: List[FaceResult] = []
        for idx, obs in enumerate(observations):
            if obs.landmarks is None:
                logger.debug("Face %d: no landmarks, skipped", idx)
                continue
            logger.debug(
                "Face %d: bbox=%s regions=%s roll=%s conf=%.3f",
                idx, obs.bounding_box.as_tuple(), obs.region_names, obs.roll, obs.confidence,
            )
            try:
                faces.append(self._process_face(frame, obs, idx, contains_upper_body, upright))
            except (GeometryError, RasterError) as e:
                logger.debug("Face %d dropped (%s): %s", idx, e.code, e.message)
            except Exception as e:
                logger.warning(
                    "Face %d dropped (unexpected %s): %s", idx, type(e).__name__, e, exc_info=True,
                )
        return faces

    def process_image(self, uri: str) -> List[FaceResult]:
        """Load ``uri`` and process it.

        Raises:
            SourceError: The URI could not be resolved or decoded.
            DetectionError: The detector failed.
        """
        try:
            frame = self.loader.load(uri)
        except FaceNormError:
            raise
        except Exception as e:
            raise SourceError(f"Failed to load {uri}: {e}") from e
        return self.process_frame(frame)

    def _process_slot(self, uri: str) -> ImageResult:
        try:
            return ImageResult(uri=uri, faces=self.process_image(uri))
        except FaceNormError as e:
            logger.warning("%s failed (%s): %s", uri, e.code, e.message)
            return ImageResult(uri=uri, error=e)
        except Exception as e:
            logger.warning("%s failed unexpectedly: %s", uri, e, exc_info=True)
            error = FaceNormError(f"Unexpected failure processing {uri}: {type(e).__name__}: {e}")
            error.__cause__ = e
            return ImageResult(uri=uri, error=error)

    def process_images(self, uris: Sequence[str]) -> List[ImageResult]:
        """Process a batch; one result per URI, in input order.

        Per-image failures are reported in the slot's ``error`` instead of
        raising.
        """
        uris = list(uris)
        slots: List[Optional[ImageResult]] = [None] * len(uris)
        if not uris:
            return []

        workers = min(self.config.max_workers, len(uris))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self._process_slot, uri): i for i, uri in enumerate(uris)}
            for future in as_completed(futures):
                slots[futures[future]] = future.result()
        return slots


def create_default_pipeline(
    config: Optional[AlignConfig] = None,
    output_dir: Optional[Union[str, Path]] = None,
    library_root: Optional[Union[str, Path]] = None,
    with_body: bool = True,
    cache_entries: int = 0,
) -> FacePipeline:
    """Pipeline wired with the shipped collaborators.

    Files (and ``ph://`` identifiers when ``library_root`` is given) are
    decoded with orientation baked in, faces come from MediaPipe and the
    upper-body flag from OpenCV's Haar cascade.
    """
    from facenorm.backends.mediapipe_face import MediaPipeFaceDetector
    from facenorm.backends.opencv_body import HaarUpperBodyDetector
    from facenorm.sources import create_default_loader

    config = config or AlignConfig()
    loader = create_default_loader(
        library_root=library_root,
        max_dimension=config.max_dimension,
        cache_entries=cache_entries,
    )
    return FacePipeline(
        loader=loader,
        detector=MediaPipeFaceDetector(),
        body_detector=HaarUpperBodyDetector() if with_body else None,
        config=config,
        output_dir=output_dir,
    )


def process_image(uri: str, **kwargs: Any) -> List[FaceResult]:
    """Process one image with a default pipeline (see :func:`create_default_pipeline`)."""
    return create_default_pipeline(**kwargs).process_image(uri)


def process_images(uris: Sequence[str], **kwargs: Any) -> List[ImageResult]:
    """Process a batch with a default pipeline (see :func:`create_default_pipeline`)."""
    return create_default_pipeline(**kwargs).process_images(uris)


__all__ = [
    "FacePipeline",
    "create_default_pipeline",
    "process_image",
    "process_images",
]
