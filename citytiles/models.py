"""Data classes and path management."""

import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import OUTPUT_DIR, MERGED_CACHE_DIR


class PathManager:
    """Manage paths relative to the citytiles directory."""

    @staticmethod
    def get_output_path(filename: str) -> pathlib.Path:
        """Get the output file path."""
        return OUTPUT_DIR / filename

    @staticmethod
    def get_cache_path(filename: str) -> pathlib.Path:
        """Get the merged-document cache path."""
        return MERGED_CACHE_DIR / filename


@dataclass
class BoundingBox:
    """Axis-aligned box in planar (RD New) metres."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def around(cls, x: float, y: float, half_width: float) -> "BoundingBox":
        """Square box of side ``2 * half_width`` centred on (x, y)."""
        if half_width <= 0:
            raise ValueError(f"half_width must be positive, got {half_width}")
        return cls(min_x=x - half_width, min_y=y - half_width,
                   max_x=x + half_width, max_y=y + half_width)

    def to_query(self) -> str:
        """Format as the ``bbox`` query parameter (minx,miny,maxx,maxy)."""
        return f"{self.min_x},{self.min_y},{self.max_x},{self.max_y}"


@dataclass(frozen=True)
class Transform:
    """CityJSON vertex transform shared by a whole document."""
    scale: tuple
    translate: tuple

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> Optional["Transform"]:
        """Parse a ``transform`` object; ``None`` when absent.

        Raises ``ValueError`` when scale/translate are missing or not 3-vectors.
        """
        if not data:
            return None
        try:
            scale, translate = tuple(data["scale"]), tuple(data["translate"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"transform needs 'scale' and 'translate' arrays, got {data!r}") from e
        if len(scale) != 3 or len(translate) != 3:
            raise ValueError(f"transform arrays must have 3 components, got {data!r}")
        return cls(scale=scale, translate=translate)

    def to_json(self) -> Dict[str, List[float]]:
        return {"scale": list(self.scale), "translate": list(self.translate)}

    def apply(self, vertex) -> tuple:
        """Return the real-world coordinate of an integer vertex."""
        return tuple(v * s + t for v, s, t in zip(vertex, self.scale, self.translate))


@dataclass
class FeatureCollection:
    """All features from a paginated query, with the first page's metadata."""
    features: List[Dict[str, Any]] = field(default_factory=list)
    transform: Optional[Transform] = None
    version: Optional[str] = None
    reference_system: Optional[str] = None
    number_matched: Optional[int] = None
    pages: int = 0
    # Set when pagination stopped on the page limit with more pages left
    truncated: bool = False

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "FeatureCollection":
        """Build from a single FeatureCollection response body."""
        metadata = data.get("metadata") or {}
        return cls(
            features=list(data.get("features") or []),
            transform=Transform.from_json(metadata.get("transform")),
            version=data.get("version"),
            reference_system=metadata.get("referenceSystem"),
            number_matched=data.get("numberMatched"),
            pages=1,
        )
