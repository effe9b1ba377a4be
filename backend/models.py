from pydantic import BaseModel, Field
from typing import Optional

from citytiles import constants


class BuildRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    half_width: float = Field(constants.BBOX_HALF_WIDTH, gt=0, le=1000)  # metres
    prune: bool = False


class ConvertResponse(BaseModel):
    x: float
    y: float
    latitude: float
    longitude: float


class JobResponse(BaseModel):
    job_id: str
    status: str
    progress: float
    message: str
    result: Optional[dict] = None


class ModelInfo(BaseModel):
    name: str
    filename: str
    size_mb: float
