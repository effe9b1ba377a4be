"""GeodeticTransform: WGS84 <-> RD New (EPSG:28992) with the RDNAPTRANS grid.

The datum-shift grid is downloaded once, placed on the PROJ search path, and
only then are the transformers built.  Initialization is lazy and shared:
every caller that arrives while the download is in flight awaits the same
task, and a failed download is reported to all of them.
"""

import asyncio
import logging
import math
import pathlib
from typing import Optional, Tuple

import requests
from pyproj import CRS, Transformer, datadir

from . import constants
from .errors import ConversionUnavailable, GridLoadFailed, InvalidCoordinate

logger = logging.getLogger(__name__)


def validate_lat_lon(lat: float, lon: float) -> None:
    """Raise InvalidCoordinate unless lat/lon are finite and in range."""
    try:
        ok = (math.isfinite(lat) and math.isfinite(lon)
              and -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0)
    except TypeError:
        ok = False
    if not ok:
        raise InvalidCoordinate(lat, lon)


class GeodeticTransform:
    """Process-wide coordinate conversion service with a single init lifecycle."""

    def __init__(self, grid_url: str = constants.DATUM_GRID_URL,
                 grid_filename: str = constants.DATUM_GRID_FILENAME,
                 proj_definition: str = constants.RD_NEW_DEFINITION,
                 cache_dir: pathlib.Path = constants.GRID_CACHE_DIR,
                 session: Optional[requests.Session] = None,
                 timeout: float = constants.REQUEST_TIMEOUT):
        self.grid_url = grid_url
        self.grid_filename = grid_filename
        self.proj_definition = proj_definition
        self.cache_dir = pathlib.Path(cache_dir)
        self.session = session or requests.Session()
        self.timeout = timeout

        self._init_task: Optional[asyncio.Task] = None
        self._to_planar: Optional[Transformer] = None
        self._to_geographic: Optional[Transformer] = None

    @property
    def is_ready(self) -> bool:
        return self._to_planar is not None

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _download_grid(self) -> pathlib.Path:
        """Fetch the grid into the cache directory unless it is already there."""
        grid_path = self.cache_dir / self.grid_filename
        if grid_path.exists() and grid_path.stat().st_size > 0:
            logger.info(f"Datum grid cache hit: {grid_path}")
            return grid_path

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading datum grid from {self.grid_url}")
        response = self.session.get(self.grid_url, timeout=self.timeout)
        response.raise_for_status()

        # Write to a temp name first so an interrupted download is never reused
        partial = grid_path.with_suffix(grid_path.suffix + ".part")
        partial.write_bytes(response.content)
        partial.replace(grid_path)
        size_mb = grid_path.stat().st_size / 1024 / 1024
        logger.info(f"Saved datum grid to {grid_path} ({size_mb:.1f} MB)")
        return grid_path

    def _build_transformers(self) -> None:
        datadir.append_data_dir(str(self.cache_dir))
        planar = CRS.from_proj4(self.proj_definition.format(grid=self.grid_filename))
        self._to_planar = Transformer.from_crs("EPSG:4326", planar, always_xy=True)
        self._to_geographic = Transformer.from_crs(planar, "EPSG:4326", always_xy=True)
        logger.info("Registered RD New projection with datum grid "
                    f"{self.grid_filename}")

    async def _initialize(self) -> None:
        grid_path = None
        try:
            grid_path = await asyncio.to_thread(self._download_grid)
            self._build_transformers()
        except Exception as e:
            logger.error(f"Datum grid initialization failed: {e}")
            self._to_planar = self._to_geographic = None
            if grid_path is not None:
                # Unusable grid file; drop it so the next attempt downloads again
                grid_path.unlink(missing_ok=True)
            raise GridLoadFailed(self.grid_url, str(e)) from e

    async def initialize(self) -> None:
        """Load the grid and projection once; concurrent callers share the work."""
        if self.is_ready:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        await asyncio.shield(self._init_task)

    # ------------------------------------------------------------------
    # Synchronous conversions (require a completed initialization)
    # ------------------------------------------------------------------

    def to_planar(self, lat: float, lon: float) -> Tuple[float, float]:
        validate_lat_lon(lat, lon)
        if not self.is_ready:
            raise ConversionUnavailable("Datum grid not loaded; await initialize() first")
        x, y = self._to_planar.transform(lon, lat)
        return x, y

    def to_lat_long(self, x: float, y: float) -> Tuple[float, float]:
        if not self.is_ready:
            raise ConversionUnavailable("Datum grid not loaded; await initialize() first")
        lon, lat = self._to_geographic.transform(x, y)
        return lat, lon

    # ------------------------------------------------------------------
    # Public async API
    # ------------------------------------------------------------------

    async def lat_long_to_planar(self, lat: float, lon: float) -> Tuple[float, float]:
        validate_lat_lon(lat, lon)
        await self.initialize()
        return self.to_planar(lat, lon)

    async def planar_to_lat_long(self, x: float, y: float) -> Tuple[float, float]:
        await self.initialize()
        return self.to_lat_long(x, y)


_shared: Optional[GeodeticTransform] = None


def get_geodetic_transform() -> GeodeticTransform:
    """Return the process-wide GeodeticTransform, creating it on first use."""
    global _shared
    if _shared is None:
        _shared = GeodeticTransform()
    return _shared
