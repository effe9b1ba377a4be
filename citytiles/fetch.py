"""Paginated download of CityJSON feature pages from the 3D BAG API."""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl, urljoin, urlsplit

import requests

from . import constants
from .errors import FetchCancelled, InconsistentTransform, PageFetchFailed
from .models import BoundingBox, FeatureCollection, Transform

logger = logging.getLogger(__name__)


def default_base_query() -> str:
    """Items endpoint of the configured tile service."""
    return urljoin(constants.TILE_SERVICE_URL.rstrip("/") + "/",
                   constants.TILE_COLLECTION_PATH)


def _create_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({
        "User-Agent": constants.HTTP_USER_AGENT,
        "Accept": "application/city+json, application/json",
    })
    return session


def _next_link(page: Dict[str, Any]) -> Optional[str]:
    for link in page.get("links") or []:
        if isinstance(link, dict) and link.get("rel") == "next" and link.get("href"):
            return link["href"]
    return None


def _page_key(url: str, params: Optional[dict]) -> tuple:
    """Identity of a page request, independent of query-string ordering and quoting."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query) + [(k, str(v)) for k, v in (params or {}).items()]
    return (parts.netloc.lower(), parts.path.rstrip("/"), tuple(sorted(query)))


def _get_page(session: requests.Session, url: str, params: Optional[dict],
              timeout: float, page_number: int) -> Dict[str, Any]:
    """Blocking GET of one page. Any failure becomes PageFetchFailed."""
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.Timeout as e:
        raise PageFetchFailed(page_number, url, f"timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise PageFetchFailed(page_number, url, str(e)) from e

    if not response.ok:
        raise PageFetchFailed(page_number, response.url or url,
                              response.reason or "non-success response",
                              status_code=response.status_code)
    try:
        data = response.json()
    except ValueError as e:
        raise PageFetchFailed(page_number, response.url or url,
                              "response is not valid JSON",
                              status_code=response.status_code) from e
    if not isinstance(data, dict):
        raise PageFetchFailed(page_number, response.url or url,
                              "response is not a JSON object",
                              status_code=response.status_code)
    return data


async def fetch_all_pages(bbox: BoundingBox,
                          page_limit: int = constants.PAGE_LIMIT,
                          base_query: Optional[str] = None,
                          *,
                          session: Optional[requests.Session] = None,
                          page_size: int = constants.PAGE_SIZE,
                          page_delay: float = constants.PAGE_DELAY,
                          timeout: float = constants.REQUEST_TIMEOUT,
                          cancel_event: Optional[asyncio.Event] = None,
                          progress_callback: Optional[Callable[[int, int], None]] = None,
                          ) -> FeatureCollection:
    """Follow ``next`` links from the first page until exhausted.

    Pages are fetched strictly one after another.  At most *page_limit*
    requests are made; hitting the limit (or a ``next`` link that was
    already visited) stops pagination with what has been collected.  Any
    page failure aborts the whole download.
    """
    if page_limit < 1:
        raise ValueError(f"page_limit must be at least 1, got {page_limit}")
    base_query = base_query or default_base_query()
    session = session or _create_session()

    url = base_query
    params: Optional[dict] = {"bbox": bbox.to_query(), "limit": page_size}
    visited = set()
    collection: Optional[FeatureCollection] = None
    page_number = 0

    logger.info(f"Fetching tiles for bbox {bbox.to_query()} (max {page_limit} pages)")
    while True:
        page_number += 1
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Fetch cancelled before page {page_number}")
            raise FetchCancelled(page_number)

        page = await asyncio.to_thread(_get_page, session, url, params, timeout, page_number)
        visited.add(_page_key(url, params))

        features = page.get("features") or []
        try:
            page_transform = Transform.from_json((page.get("metadata") or {}).get("transform"))
        except (AttributeError, ValueError) as e:
            raise PageFetchFailed(page_number, url, f"malformed metadata.transform: {e}") from e

        if collection is None:
            collection = FeatureCollection.from_json(page)
        else:
            if collection.transform is None:
                collection.transform = page_transform
            elif page_transform is not None and page_transform != collection.transform:
                raise InconsistentTransform(f"page {page_number}",
                                            collection.transform, page_transform)
            collection.features.extend(features)
            collection.pages = page_number

        logger.info(f"  page {page_number}: {len(features)} features "
                    f"({len(collection.features)} total)")
        if progress_callback:
            progress_callback(page_number, len(collection.features))

        href = _next_link(page)
        if href is None:
            break
        if page_number >= page_limit:
            logger.warning(f"Page limit of {page_limit} reached; stopping with "
                           f"{len(collection.features)} features")
            collection.truncated = True
            break

        # The next link carries its own query string
        url, params = urljoin(base_query, href), None
        if _page_key(url, None) in visited:
            logger.warning(f"Next link of page {page_number} points back to an "
                           f"already fetched page; stopping")
            break

        await asyncio.sleep(page_delay)

    logger.info(f"Fetched {len(collection.features)} features in {collection.pages} pages")
    return collection
