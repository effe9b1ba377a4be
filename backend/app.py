from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backend import config
from backend.routers import build, convert, models

app = FastAPI(
    title="citytiles API",
    description="Backend API that merges 3D BAG building tiles into CityJSON models",
    version="0.1.0",
)

# ---------------------------------------------------------------------------
# CORS -- allow the viewer dev server
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(build.router)
app.include_router(convert.router)
app.include_router(models.router)

# ---------------------------------------------------------------------------
# Static files -- serve merged CityJSON models
# ---------------------------------------------------------------------------
config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/output", StaticFiles(directory=str(config.OUTPUT_DIR)), name="output")


@app.get("/")
async def root():
    return {"status": "ok", "service": "citytiles API"}
