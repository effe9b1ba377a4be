"""Configuration constants, service endpoints, and paths."""

import os
import pathlib
import logging

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "").strip()
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


# ── 3D BAG tile service ──────────────────────────────────────────────────
TILE_SERVICE_URL = os.environ.get("CITYTILES_SERVICE_URL", "https://api.3dbag.nl")
TILE_COLLECTION_PATH = "collections/pand/items"

PAGE_LIMIT = _env_int("CITYTILES_PAGE_LIMIT", 50)       # max pages per area
PAGE_SIZE = _env_int("CITYTILES_PAGE_SIZE", 100)        # features per page
PAGE_DELAY = _env_float("CITYTILES_PAGE_DELAY", 0.1)    # seconds between requests (be polite)
REQUEST_TIMEOUT = _env_float("CITYTILES_REQUEST_TIMEOUT", 30.0)

# Half the side of the square query box around the target point (metres)
BBOX_HALF_WIDTH = _env_float("CITYTILES_BBOX_HALF_WIDTH", 50.0)

HTTP_USER_AGENT = "citytiles/0.1"

# ── RD New (EPSG:28992) with the RDNAPTRANS 2018 datum-shift grid ───────
DATUM_GRID_URL = os.environ.get(
    "CITYTILES_GRID_URL",
    "https://github.com/OSGeo/proj-datumgrid/raw/refs/heads/master/europe/rdtrans2018.gsb",
)
DATUM_GRID_FILENAME = "rdtrans2018.gsb"

# {grid} is replaced by the grid filename once it is on the PROJ search path.
# ",null" keeps points outside the grid extent convertible.
RD_NEW_DEFINITION = (
    "+proj=sterea +lat_0=52.15616055555555 +lon_0=5.38763888888889 "
    "+k=0.9999079 +x_0=155000 +y_0=463000 +ellps=bessel "
    "+units=m +no_defs +nadgrids={grid},null"
)

# Configure base paths
BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
CACHE_DIR = BASE_DIR / "cache"
GRID_CACHE_DIR = CACHE_DIR / "grids"
MERGED_CACHE_DIR = CACHE_DIR / "merged"
OUTPUT_DIR = BASE_DIR / "output"

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)
