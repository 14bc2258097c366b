"""Configuration for the face normalization pipeline.

Example:
    >>> from facenorm.config import AlignConfig
    >>> config = AlignConfig(padding=0.2)
    >>> config = AlignConfig.from_yaml("facenorm.yaml")
"""

from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Tuple, Union

# Canonical 112x112 alignment template (eye centres at x=30.2946 / 65.5318).
TEMPLATE_LEFT_EYE_X = 30.2946
TEMPLATE_RIGHT_EYE_X = 65.5318
TEMPLATE_EYE_Y = 51.6963
TEMPLATE_X_SHIFT = 8.0

OUTPUT_SIDE = 112
PUPIL_DISTANCE = TEMPLATE_RIGHT_EYE_X - TEMPLATE_LEFT_EYE_X  # 35.2372
LEFT_EYE_ANCHOR = (
    (TEMPLATE_LEFT_EYE_X + TEMPLATE_X_SHIFT) / OUTPUT_SIDE,  # ~0.342
    TEMPLATE_EYE_Y / OUTPUT_SIDE,  # ~0.462
)
MIN_PUPIL_DISTANCE = 0.1

CROP_FORMATS = ("jpg", "png")


@dataclass(frozen=True)
class AlignConfig:
    """Alignment and output settings.

    Attributes:
        padding: Extra margin around the bounding box on the fallback path
            (0 = tight square).
        roll_correction: Fraction of the measured roll to undo (1.0 = full).
        output_side: Side of the square output crop in pixels.
        pupil_distance: Target inter-pupillary distance in output pixels.
        left_eye_anchor: Left pupil position as a fraction of the output side.
        min_pupil_distance: Below this (pixels) pupils are degenerate.
        request_quality: Run the capture-quality pass when the detector
            does not report it in-line.
        crop_format: "jpg" or "png".
        jpeg_quality: JPEG quality 0-100.
        max_workers: Concurrent images in a batch.
        max_dimension: Longest side of decoded images (0 = no limit).
    """

    padding: float = 0.0
    roll_correction: float = 1.0
    output_side: int = OUTPUT_SIDE
    pupil_distance: float = PUPIL_DISTANCE
    left_eye_anchor: Tuple[float, float] = field(default=LEFT_EYE_ANCHOR)
    min_pupil_distance: float = MIN_PUPIL_DISTANCE
    request_quality: bool = True
    crop_format: str = "jpg"
    jpeg_quality: int = 100
    max_workers: int = 4
    max_dimension: int = 1024

    def __post_init__(self) -> None:
        object.__setattr__(self, "left_eye_anchor", tuple(self.left_eye_anchor))
        object.__setattr__(self, "crop_format", self.crop_format.lower().lstrip("."))
        if self.crop_format == "jpeg":
            object.__setattr__(self, "crop_format", "jpg")
        self.validate()

    def validate(self) -> None:
        """Raise ValueError on out-of-range settings."""
        if self.padding < 0:
            raise ValueError(f"padding must be >= 0, got {self.padding}")
        if self.output_side <= 0:
            raise ValueError(f"output_side must be > 0, got {self.output_side}")
        if self.pupil_distance <= 0:
            raise ValueError(f"pupil_distance must be > 0, got {self.pupil_distance}")
        if len(self.left_eye_anchor) != 2 or not all(
            0.0 <= v <= 1.0 for v in self.left_eye_anchor
        ):
            raise ValueError(
                f"left_eye_anchor must be two fractions in [0, 1], got {self.left_eye_anchor}"
            )
        if self.min_pupil_distance < 0:
            raise ValueError("min_pupil_distance must be >= 0")
        if self.crop_format not in CROP_FORMATS:
            raise ValueError(
                f"crop_format must be one of {CROP_FORMATS}, got {self.crop_format!r}"
            )
        if not 0 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be in [0, 100], got {self.jpeg_quality}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.max_dimension < 0:
            raise ValueError("max_dimension must be >= 0")

    def with_overrides(self, **kwargs: Any) -> "AlignConfig":
        """Copy with the given non-None fields replaced."""
        changes = {k: v for k, v in kwargs.items() if v is not None}
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["left_eye_anchor"] = list(self.left_eye_anchor)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlignConfig":
        """Create AlignConfig from a dictionary (e.g. loaded from YAML).

        Unknown keys are ignored so config files can carry extra sections.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in (data or {}).items() if k in known}
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "AlignConfig":
        """Load AlignConfig from a YAML file.

        The file may hold the settings at the top level or under an
        ``align:`` key.
        """
        import yaml

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data.get("align"), dict):
            data = data["align"]
        return cls.from_dict(data)


__all__ = [
    "AlignConfig",
    "OUTPUT_SIDE",
    "PUPIL_DISTANCE",
    "LEFT_EYE_ANCHOR",
    "MIN_PUPIL_DISTANCE",
    "CROP_FORMATS",
]
