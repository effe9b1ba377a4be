import logging

from fastapi import APIRouter, HTTPException, Query

from citytiles.errors import GeodeticError, InvalidCoordinate
from citytiles.geodetic import get_geodetic_transform

from backend.models import ConvertResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["convert"])


@router.get("/convert", response_model=ConvertResponse)
async def convert_location(latitude: float = Query(...), longitude: float = Query(...)):
    """Project a WGS84 coordinate to RD New (EPSG:28992).

    The first call triggers the one-time datum grid download; concurrent
    requests wait on the same download.
    """
    try:
        x, y = await get_geodetic_transform().lat_long_to_planar(latitude, longitude)
    except InvalidCoordinate as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except GeodeticError as exc:
        logger.error(f"Coordinate conversion unavailable: {exc}")
        raise HTTPException(status_code=503, detail=str(exc))

    return ConvertResponse(x=x, y=y, latitude=latitude, longitude=longitude)
