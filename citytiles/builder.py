"""CityModelBuilder: locate, fetch, merge and write a city model."""

import asyncio
import hashlib
import json
import logging
import time
from typing import Any, Dict, Optional

import requests

from . import constants
from .fetch import default_base_query, fetch_all_pages
from .geodetic import GeodeticTransform, get_geodetic_transform, validate_lat_lon
from .merge import MergeStats, merge_features
from .models import BoundingBox, PathManager
from .vertices import prune_unreferenced_vertices

logger = logging.getLogger(__name__)

_CACHE_VERSION = 1  # bump when merge output changes


def _cache_key(bbox: BoundingBox, pruned: bool, base_query: str) -> str:
    """Filename for a merged-document cache entry."""
    suffix = "_pruned" if pruned else ""
    service = hashlib.sha1(base_query.encode("utf-8")).hexdigest()[:10]
    return (f"merged_v{_CACHE_VERSION}_{service}_{bbox.min_x:.2f}_{bbox.min_y:.2f}"
            f"_{bbox.max_x:.2f}_{bbox.max_y:.2f}{suffix}.json")


def _load_cached(bbox: BoundingBox, pruned: bool, base_query: str) -> Optional[Dict[str, Any]]:
    path = PathManager.get_cache_path(_cache_key(bbox, pruned, base_query))
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            doc = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable cache entry {path.name}: {e}")
        return None
    logger.info(f"Merged-document cache hit: {path.name} "
                f"({len(doc['CityObjects'])} CityObjects)")
    return doc


def _save_cached(bbox: BoundingBox, pruned: bool, base_query: str,
                 doc: Dict[str, Any]) -> None:
    path = PathManager.get_cache_path(_cache_key(bbox, pruned, base_query))
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(doc, f)
    size_mb = path.stat().st_size / 1024 / 1024
    logger.info(f"Saved merged document to cache ({size_mb:.1f} MB)")


def write_document(doc: Dict[str, Any], output_path: str) -> str:
    """Write a CityJSON document below the output directory. Returns the absolute path."""
    resolved = PathManager.get_output_path(output_path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    with open(resolved, "w", encoding="utf-8") as f:
        json.dump(doc, f)
    logger.info(f"Wrote {len(doc['CityObjects'])} CityObjects, "
                f"{len(doc['vertices'])} vertices to {resolved}")
    return str(resolved)


class CityModelBuilder:
    def __init__(self, geodetic: Optional[GeodeticTransform] = None,
                 session: Optional[requests.Session] = None,
                 base_query: Optional[str] = None,
                 page_limit: int = constants.PAGE_LIMIT,
                 page_delay: float = constants.PAGE_DELAY,
                 timeout: float = constants.REQUEST_TIMEOUT,
                 use_cache: bool = True):
        """
        geodetic: coordinate service; defaults to the process-wide instance.
        session: requests session for the tile service.
        use_cache: set False to bypass the merged-document cache.
        """
        self.geodetic = geodetic or get_geodetic_transform()
        self.session = session
        self.base_query = base_query
        self.page_limit = page_limit
        self.page_delay = page_delay
        self.timeout = timeout
        self.use_cache = use_cache
        self.last_stats: Optional[MergeStats] = None
        self.timings: Dict[str, float] = {}

    async def bbox_for(self, lat: float, lon: float,
                       half_width: float = constants.BBOX_HALF_WIDTH) -> BoundingBox:
        """Project (lat, lon) to RD New and square it off."""
        x, y = await self.geodetic.lat_long_to_planar(lat, lon)
        bbox = BoundingBox.around(x, y, half_width)
        logger.info(f"({lat}, {lon}) -> RD ({x:.2f}, {y:.2f}); bbox {bbox.to_query()}")
        return bbox

    async def process_location(self, lat: float, lon: float,
                               half_width: float = constants.BBOX_HALF_WIDTH,
                               prune: bool = False,
                               cancel_event: Optional[asyncio.Event] = None,
                               progress_callback=None) -> Dict[str, Any]:
        """Fetch and merge every building tile around a coordinate."""
        def _progress(pct, msg):
            if progress_callback:
                progress_callback(pct, msg)

        try:
            validate_lat_lon(lat, lon)
            logger.info(f"Starting to process location: {lat}, {lon}")
            _progress(5, "Loading coordinate grid...")
            t0 = time.perf_counter()
            bbox = await self.bbox_for(lat, lon, half_width)
            self.timings["transform"] = time.perf_counter() - t0

            return await self.process_bbox(bbox, prune=prune,
                                           cancel_event=cancel_event,
                                           progress_callback=progress_callback)
        except Exception as e:
            logger.error(f"Error processing location: {e}")
            raise

    async def process_bbox(self, bbox: BoundingBox, prune: bool = False,
                           cancel_event: Optional[asyncio.Event] = None,
                           progress_callback=None) -> Dict[str, Any]:
        """Fetch and merge every building tile inside a planar bounding box."""
        def _progress(pct, msg):
            if progress_callback:
                progress_callback(pct, msg)

        if self.use_cache:
            cached = _load_cached(bbox, prune, self.base_query or default_base_query())
            if cached is not None:
                _progress(100, "Loaded from cache")
                return cached

        def _page_progress(page_number, feature_count):
            # Pages are open-ended; creep towards 80%
            pct = min(80.0, 10.0 + page_number * 5.0)
            _progress(pct, f"Fetched page {page_number} ({feature_count} buildings)")

        _progress(10, "Fetching building tiles...")
        t0 = time.perf_counter()
        collection = await fetch_all_pages(
            bbox, self.page_limit, self.base_query,
            session=self.session,
            page_delay=self.page_delay,
            timeout=self.timeout,
            cancel_event=cancel_event,
            progress_callback=_page_progress,
        )
        self.timings["fetch"] = time.perf_counter() - t0

        _progress(85, "Merging tiles...")
        t0 = time.perf_counter()
        self.last_stats = MergeStats()
        doc = merge_features(collection, self.last_stats)
        if prune:
            doc = prune_unreferenced_vertices(doc)
        self.timings["merge"] = time.perf_counter() - t0

        if self.use_cache:
            if collection.truncated:
                logger.info("Incomplete result (page limit reached); not caching it")
            else:
                _save_cached(bbox, prune, self.base_query or default_base_query(), doc)
        _progress(95, "Merged city model ready")
        return doc

    async def build(self, lat: float, lon: float, output_path: str,
                    half_width: float = constants.BBOX_HALF_WIDTH,
                    prune: bool = False,
                    cancel_event: Optional[asyncio.Event] = None,
                    progress_callback=None) -> str:
        """Process a location and write the merged CityJSON. Returns the file path."""
        doc = await self.process_location(lat, lon, half_width, prune=prune,
                                          cancel_event=cancel_event,
                                          progress_callback=progress_callback)
        return write_document(doc, output_path)
