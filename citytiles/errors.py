"""Exception types raised by the tile fetching, merging and geodetic layers."""

from typing import Optional


class CityTilesError(Exception):
    """Base class for all citytiles errors."""


class InvalidCoordinate(CityTilesError, ValueError):
    def __init__(self, lat, lon):
        self.lat = lat
        self.lon = lon
        super().__init__(
            f"Invalid coordinate lat={lat}, lon={lon}: latitude must be in "
            f"[-90, 90] and longitude in [-180, 180]")


# ── Geodetic transform ──────────────────────────────────────────────────

class GeodeticError(CityTilesError):
    pass


class ConversionUnavailable(GeodeticError):
    """Conversion requested before the datum grid finished loading."""


class GridLoadFailed(GeodeticError):
    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to load datum grid from {url}: {reason}")


# ── Paginated fetch ─────────────────────────────────────────────────────

class FetchError(CityTilesError):
    pass


class PageFetchFailed(FetchError):
    def __init__(self, page_number: int, url: str, reason: str,
                 status_code: Optional[int] = None):
        self.page_number = page_number
        self.url = url
        self.reason = reason
        self.status_code = status_code
        status = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Page {page_number} fetch failed{status}: {reason} [{url}]")


class FetchCancelled(FetchError):
    def __init__(self, page_number: int):
        self.page_number = page_number
        super().__init__(f"Fetch cancelled before page {page_number}")


# ── Merge ───────────────────────────────────────────────────────────────

class MergeError(CityTilesError):
    pass


class MalformedGeometry(MergeError):
    def __init__(self, object_id: Optional[str], detail: str):
        self.object_id = object_id
        self.detail = detail
        super().__init__(f"Malformed geometry in CityObject {object_id!r}: {detail}")


class DanglingVertexReference(MergeError):
    def __init__(self, object_id: Optional[str], index: int):
        self.object_id = object_id
        self.index = index
        super().__init__(
            f"CityObject {object_id!r} references vertex {index}, "
            f"which does not exist in its feature")


class InconsistentTransform(MergeError):
    def __init__(self, source: str, expected, actual):
        self.source = source
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Transform of {source} differs from the collection transform: "
            f"expected {expected}, got {actual}")
