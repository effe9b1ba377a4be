import os
import pathlib

BASE_DIR = pathlib.Path(__file__).parent.parent.absolute()
OUTPUT_DIR = BASE_DIR / "output"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "CITYTILES_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
    if origin.strip()
]

# Set CITYTILES_NO_CACHE=1 to bypass the merged-document cache
USE_CACHE = os.environ.get("CITYTILES_NO_CACHE", "").strip() not in ("1", "true", "yes")
