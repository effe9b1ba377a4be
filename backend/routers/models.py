import logging
from pathlib import Path
from typing import List

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from backend import config
from backend.models import ModelInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=List[ModelInfo])
async def list_models():
    """Return metadata for every merged ``.json`` model in the output directory."""
    output_dir: Path = config.OUTPUT_DIR
    if not output_dir.exists():
        return []

    models: list[ModelInfo] = []
    for model_file in sorted(output_dir.glob("*.json")):
        models.append(
            ModelInfo(
                name=model_file.stem.replace("-", " ").title(),
                filename=model_file.name,
                size_mb=round(model_file.stat().st_size / 1024 / 1024, 2),
            )
        )
    return models


@router.get("/{filename}")
async def get_model(filename: str):
    """Serve a specific CityJSON model from the output directory."""
    file_path = (config.OUTPUT_DIR / filename).resolve()
    if file_path.parent != config.OUTPUT_DIR.resolve():
        raise HTTPException(status_code=404, detail="Model file not found")
    if not file_path.exists() or not file_path.is_file():
        raise HTTPException(status_code=404, detail="Model file not found")

    return FileResponse(
        path=str(file_path),
        media_type="application/city+json",
        filename=filename,
    )
